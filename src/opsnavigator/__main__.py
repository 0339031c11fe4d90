"""Allow ``python -m opsnavigator [play|status]``."""

from __future__ import annotations

import sys

from .main import run


def main(argv: list[str] | None = None) -> int:
    return run(sys.argv[1:] if argv is None else argv)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
