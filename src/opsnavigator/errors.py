"""Exceptions raised across the navigator."""

from __future__ import annotations


class NavigatorError(Exception):
    """Base class for navigator failures."""


class PersistenceError(NavigatorError):
    """Progress or completion storage could not be read or written."""


class SimulatorClosedError(NavigatorError):
    """A command was sent to a simulator that has already been torn down."""
