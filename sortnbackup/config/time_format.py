"""Validation of strftime format strings used by timestamp path elements.

Python's strftime silently passes unknown directives through, so a typo such
as ``%Q`` would otherwise only show up as odd folder names after a backup.
"""

import re
from datetime import datetime

# Directives documented for datetime.strftime that behave the same on all
# platforms, plus the literal percent sign. The locale date forms %c and %x
# are left out: they render slashes in the C locale.
VALID_DIRECTIVES = frozenset("aAwdbBmyYHIpMSfzZjUWXGuV%")

# Rendered once during validation to catch separators a directive produces.
SAMPLE_TIME = datetime(2000, 1, 2, 3, 4, 5)

_DIRECTIVE = re.compile(r"%(.?)")


def validate_time_format(value: str) -> str:
    """Check a strftime format string.

    Args:
        value: Format string from the configuration.

    Returns:
        The unchanged format string.

    Raises:
        ValueError: If the string is empty, contains an unknown or dangling
            directive, or would render a path separator.
    """
    if not value:
        raise ValueError("date/time format string must not be empty")
    for match in _DIRECTIVE.finditer(value):
        directive = match.group(1)
        if not directive:
            raise ValueError(f"dangling '%' in date/time format string '{value}'")
        if directive not in VALID_DIRECTIVES:
            raise ValueError(
                f"invalid date/time format string '{value}': unknown directive '%{directive}'. "
                "See https://docs.python.org/3/library/datetime.html#format-codes"
            )
    if "/" in value or "\\" in value or _renders_separator(value):
        raise ValueError(
            f"date/time format string '{value}' must not contain path separators; "
            "use one path element per folder level"
        )
    return value


def _renders_separator(value: str) -> bool:
    rendered = SAMPLE_TIME.strftime(value)
    return "/" in rendered or "\\" in rendered
