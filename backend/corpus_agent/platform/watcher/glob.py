"""Glob filters.

Globs use ``/`` as separator: ``*`` and ``?`` never cross it, ``**`` does,
``[...]`` are character classes and ``{a,b}`` alternatives. Patterns are
anchored at the mount root.

Example:
    spec = compile_glob("docs/**/*.{md,txt}")
    spec.match_file("docs/guide/intro.md")  # True
"""

from typing import List

import pathspec

from corpus_agent.core.exceptions import ConfigurationError


def _find_closing_brace(pattern: str, start: int) -> int:
    depth = 0
    index = start
    while index < len(pattern):
        char = pattern[index]
        if char == "\\":
            index += 2
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


def _split_alternatives(body: str) -> List[str]:
    alternatives, depth, current, index = [], 0, [], 0
    while index < len(body):
        char = body[index]
        if char == "\\" and index + 1 < len(body):
            current.append(body[index : index + 2])
            index += 2
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char == "," and depth == 0:
            alternatives.append("".join(current))
            current = []
            index += 1
            continue
        current.append(char)
        index += 1
    alternatives.append("".join(current))
    return alternatives


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternatives, nested ones included.

    Raises:
        ConfigurationError: On unbalanced braces
    """
    index = 0
    while index < len(pattern):
        if pattern[index] == "\\":
            index += 2
            continue
        if pattern[index] == "{":
            break
        if pattern[index] == "}":
            raise ConfigurationError(f"invalid glob '{pattern}': unbalanced '}}'")
        index += 1
    else:
        return [pattern]

    end = _find_closing_brace(pattern, index)
    if end < 0:
        raise ConfigurationError(f"invalid glob '{pattern}': unbalanced '{{'")

    prefix, body, suffix = pattern[:index], pattern[index + 1 : end], pattern[end + 1 :]
    expanded: List[str] = []
    for alternative in _split_alternatives(body):
        expanded.extend(expand_braces(prefix + alternative + suffix))
    return expanded


def compile_glob(pattern: str) -> pathspec.PathSpec:
    """Compile a glob into a path matcher.

    Args:
        pattern: Glob such as ``**/*.pdf`` or ``watched/{a,b}/*``

    Returns:
        A ``pathspec.PathSpec`` whose ``match_file`` tests mount-relative paths

    Raises:
        ConfigurationError: If the glob is invalid
    """
    if not pattern:
        raise ConfigurationError("invalid glob: empty pattern")

    lines = []
    for alternative in expand_braces(pattern):
        alternative = alternative.lstrip("/")
        if alternative.startswith("!"):
            alternative = "\\" + alternative
        lines.append("/" + alternative)

    try:
        return pathspec.PathSpec.from_lines("gitwildmatch", lines)
    except ValueError as e:
        raise ConfigurationError(f"invalid glob '{pattern}': {e}") from e
