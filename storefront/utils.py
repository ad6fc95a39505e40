import html
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
import bleach

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)")
_LEADING_INT = re.compile(r"^\s*[+-]?\d+")


def sanitize_input(value: Optional[str]) -> str:
    """Sanitize a user-supplied search term.

    - Removes NULL bytes
    - Strips every HTML tag using bleach.clean(..., tags=set(), strip=True)
    - Unescapes the entities bleach leaves behind, so "Tom & Jerry" stays intact
    - Trims whitespace

    Queries are parameterized and LIKE wildcards are escaped separately, so
    punctuation such as ';' is kept.
    """
    if value is None:
        return ""
    val = value.replace("\x00", "")
    val = bleach.clean(val, tags=set(), strip=True)
    return html.unescape(val).strip()


def like_pattern(term: str) -> str:
    """Build a ``%term%`` LIKE pattern with the term's own wildcards escaped (escape char ``\\``)."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def round_amount(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def leading_number(text: str) -> Decimal:
    """Numeric prefix of ``text`` ("12.5kg" -> 12.5), or 0 when there is none."""
    match = _LEADING_NUMBER.match(text or "")
    return Decimal(match.group(0).strip()) if match else Decimal(0)


def leading_int(text: str) -> int:
    match = _LEADING_INT.match(text or "")
    return int(match.group(0)) if match else 0
