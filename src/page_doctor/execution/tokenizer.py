"""Command-line tokenization for CLI invocations."""

from __future__ import annotations

import re

_NEEDS_QUOTING = re.compile(r"[\s\"'$`\\&|;<>()]")
_SHELL_SPECIAL = re.compile(r'(["$`\\])')
_DOUBLE_QUOTE_ESCAPABLE = frozenset('"$`\\')


def split_arguments(command: str) -> list[str]:
    """Split a command string into raw argument tokens.

    Single and double quotes group characters into one token and are dropped.
    A backslash outside quotes takes the next character verbatim; inside double
    quotes it only escapes ``"``, ``$``, backtick and backslash. Malformed input
    never raises: an unterminated quote simply ends with the input.
    """

    tokens: list[str] = []
    current: list[str] = []
    quote: str | None = None
    escape = False
    index = 0
    length = len(command)

    while index < length:
        char = command[index]
        index += 1
        if escape:
            current.append(char)
            escape = False
            continue
        if quote == "'":
            if char == quote:
                quote = None
            else:
                current.append(char)
            continue
        if quote == '"':
            if char == "\\" and index < length and command[index] in _DOUBLE_QUOTE_ESCAPABLE:
                escape = True
            elif char == quote:
                quote = None
            else:
                current.append(char)
            continue
        if char == "\\":
            escape = True
            continue
        if char in {"'", '"'}:
            quote = char
            # Empty quoted strings produce no token.
            continue
        if char.isspace():
            if current:
                tokens.append("".join(current))
                current = []
            continue
        current.append(char)

    if current:
        tokens.append("".join(current))
    return tokens


def parse_arguments(command: str) -> list[str]:
    """Split a command string into shell-safe argument tokens.

    Tokens that contain whitespace or shell metacharacters are re-quoted so the
    joined sequence can be handed to a shell unchanged.
    """

    return [quote_argument(token) for token in split_arguments(command)]


def quote_argument(token: str) -> str:
    """Wrap a token containing whitespace or shell metacharacters in double quotes."""

    if not _NEEDS_QUOTING.search(token):
        return token
    return '"' + _SHELL_SPECIAL.sub(r"\\\1", token) + '"'
