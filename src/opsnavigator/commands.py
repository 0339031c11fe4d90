"""Order-insensitive comparison of typed commands against expected commands."""

from __future__ import annotations

import shlex
from dataclasses import dataclass

# Long and short spellings that mean the same thing for a given tool.
_OPTION_ALIASES: dict[str, dict[str, str]] = {
    "docker": {"--detach": "-d", "--publish": "-p", "--tag": "-t", "--all": "-a", "--interactive": "-i"},
    "git": {"--message": "-m", "--all": "-a", "--set-upstream": "-u"},
    "kubectl": {"--filename": "-f", "--namespace": "-n", "--output": "-o"},
    "helm": {"--namespace": "-n", "--values": "-f"},
}


@dataclass(frozen=True)
class NormalizedCommand:
    """Canonical command shape for answer validation."""

    command: str
    options: tuple[tuple[str, str | None], ...]
    positionals: tuple[str, ...]


def commands_match(user_input: str, expected: str) -> bool:
    """Return whether typed input is equivalent to the expected command."""
    user_variants = _normalize_command_variants(user_input)
    if not user_variants:
        return False
    expected_variants = _normalize_command_variants(expected)
    return bool(expected_variants) and not user_variants.isdisjoint(expected_variants)


def _normalize_command_variants(command: str) -> set[NormalizedCommand]:
    """Return all plausible normalized commands for ambiguous short-option forms."""
    stripped = command.strip()
    if not stripped:
        return set()
    try:
        tokens = shlex.split(stripped, posix=True)
    except ValueError:
        return set()
    if not tokens:
        return set()
    # `docker-compose up` and `docker compose up` are the same command.
    if tokens[0] == "docker-compose":
        tokens = ["docker", "compose", *tokens[1:]]
    return _canonicalize_tokens_variants(tuple(token.strip() for token in tokens))


def _canonicalize_tokens_variants(tokens: tuple[str, ...]) -> set[NormalizedCommand]:
    """Build canonical command structures from shell tokens, including ambiguous forms."""
    command = tokens[0]
    results: set[NormalizedCommand] = set()

    def walk(
        index: int,
        force_positionals: bool,
        options: tuple[tuple[str, str | None], ...],
        positionals: tuple[str, ...],
    ) -> None:
        if index >= len(tokens):
            normalized_options = tuple((_normalize_option_key(command, key), value) for key, value in options)
            sorted_options = tuple(
                sorted(normalized_options, key=lambda pair: (pair[0], "" if pair[1] is None else pair[1]))
            )
            results.add(NormalizedCommand(command=command, options=sorted_options, positionals=positionals))
            return

        token = tokens[index]

        if force_positionals:
            walk(index + 1, True, options, positionals + (token,))
            return

        if token == "--":
            walk(index + 1, True, options, positionals)
            return

        if token.startswith("--") and len(token) > 2:
            for key, value, consumed in _parse_long_option_variants(tokens, index):
                walk(index + consumed, False, options + ((key, value),), positionals)
            return

        if token.startswith("-") and len(token) > 1:
            for short_options, consumed in _parse_short_option_variants(tokens, index):
                walk(index + consumed, False, options + tuple(short_options), positionals)
            return

        walk(index + 1, False, options, positionals + (token,))

    walk(index=1, force_positionals=False, options=tuple(), positionals=tuple())
    return results


def _parse_long_option_variants(tokens: tuple[str, ...], index: int) -> list[tuple[str, str | None, int]]:
    """Parse one long option token, allowing both flag and separate-value readings."""
    token = tokens[index]
    if "=" in token:
        key, value = token.split("=", 1)
        return [(key, value, 1)]
    variants: list[tuple[str, str | None, int]] = [(token, None, 1)]
    if index + 1 < len(tokens) and not tokens[index + 1].startswith("-"):
        variants.append((token, tokens[index + 1], 2))
    return variants


def _normalize_option_key(command: str, key: str) -> str:
    """Map equivalent option keys to one canonical form for a command."""
    return _OPTION_ALIASES.get(command, {}).get(key, key)


def _parse_short_option_variants(
    tokens: tuple[str, ...], index: int
) -> list[tuple[list[tuple[str, str | None]], int]]:
    """Parse short options, including ambiguous split-value forms."""
    token = tokens[index]
    # Combined single-letter flags like `-am` and `-ma` are equivalent.
    if len(token) > 2 and token[1:].isalpha():
        flags = sorted(token[1:])
        variants: list[tuple[list[tuple[str, str | None]], int]] = [([(f"-{flag}", None) for flag in flags], 1)]
        # The last flag of a bundle may take the following value (`git commit -am "msg"`).
        if index + 1 < len(tokens) and not tokens[index + 1].startswith("-"):
            head = [(f"-{flag}", None) for flag in token[1:-1]]
            variants.append((head + [(f"-{token[-1]}", tokens[index + 1])], 2))
        return variants

    # Attached value form like `-p80:80`.
    if len(token) > 2:
        return [([(token[:2], token[2:])], 1)]

    variants = [([(token, None)], 1)]
    if index + 1 < len(tokens) and not tokens[index + 1].startswith("-"):
        variants.append(([(token, tokens[index + 1])], 2))
    return variants
