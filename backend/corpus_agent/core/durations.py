"""Duration parsing.

Durations use the compact notation accepted on the command line and in DSN
parameters: a sequence of decimal numbers, each followed by a unit, for
example ``30s``, ``1h30m`` or ``1.5m``.
"""

import re
from datetime import timedelta

from corpus_agent.core.exceptions import ConfigurationError

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """Parse a duration string.

    Args:
        value: Duration such as ``"30s"``, ``"-1m"`` or ``"1h2m3.5s"``. ``"0"`` is accepted.

    Returns:
        The parsed duration

    Raises:
        ConfigurationError: If the string is not a valid duration
    """
    text = value.strip()
    if not text:
        raise ConfigurationError(f"invalid duration '{value}'")

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    if text == "0":
        return timedelta(0)

    total = 0.0
    position = 0
    while position < len(text):
        match = _COMPONENT.match(text, position)
        if match is None:
            raise ConfigurationError(f"invalid duration '{value}'")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        position = match.end()

    if position == 0:
        raise ConfigurationError(f"invalid duration '{value}'")

    return timedelta(seconds=sign * total)
