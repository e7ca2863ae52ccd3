"""Data cleaning and validation utilities."""
from typing import Any, Optional, Tuple
import logging
import math
import re
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

NULL_TOKENS = {'', 'null', 'none', 'nan', 'n/a'}

# C0 (U+0000-U+001F), DEL and C1 (U+0080-U+009F)
_CONTROL_CHARS = re.compile('[\x00-\x1f\x7f-\x9f]')
_WHITESPACE_CONTROLS = re.compile('[\t\n\r\x0b\x0c\x85]')
_WHITESPACE_RUN = re.compile(r'\s+')
_DATE_SEPARATORS = re.compile(r'[/\-\s:]+')

STRICT_DATE_FORMATS = [
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%Y-%m-%d',
]


def is_blank(value: Any) -> bool:
    """True for None, empty strings and textual null markers."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip().lower() in NULL_TOKENS


def normalize_text(value: Any) -> str:
    """
    Normalize a free-text field.

    Whitespace control characters become spaces, every other C0/C1 control
    character is dropped, runs of whitespace collapse to one space and the
    result is trimmed.

    Args:
        value: Raw field value (None is treated as empty)

    Returns:
        Normalized string (possibly empty)
    """
    if value is None:
        return ''
    text = _WHITESPACE_CONTROLS.sub(' ', str(value))
    text = _CONTROL_CHARS.sub('', text)
    return _WHITESPACE_RUN.sub(' ', text).strip()


def normalize_optional(value: Any) -> Optional[str]:
    """normalize_text, mapping blank/null values to None."""
    if is_blank(value):
        return None
    text = normalize_text(value)
    return text or None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_strict_date(value: str) -> Optional[datetime]:
    """Parse ISO 8601 or one of STRICT_DATE_FORMATS; None on failure."""
    try:
        return _as_utc(datetime.fromisoformat(value))
    except ValueError:
        pass

    for fmt in STRICT_DATE_FORMATS:
        try:
            return _as_utc(datetime.strptime(value, fmt))
        except ValueError:
            continue

    return None


def parse_split_date(value: str) -> Optional[datetime]:
    """
    Split on '/', '-', whitespace or ':' and read the first three tokens as
    day/month/year. A four-digit first token is read as year/month/day.
    Two-digit years are taken as 20xx.
    """
    tokens = [t for t in _DATE_SEPARATORS.split(value) if t]
    if len(tokens) < 3:
        return None

    try:
        first, second, third = (int(t) for t in tokens[:3])
    except ValueError:
        return None

    if len(tokens[0]) == 4:
        year, month, day = first, second, third
    else:
        day, month, year = first, second, third
    if year < 100:
        year += 2000

    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except (ValueError, OverflowError):
        return None


def parse_detection_date(value: Any, fallback: datetime) -> Tuple[datetime, bool]:
    """
    Parse a detection date with the tolerant cascade.

    Args:
        value: Raw date string
        fallback: Timestamp to use when nothing parses (the run's processing time)

    Returns:
        Tuple of (parsed datetime in UTC, used_fallback)
    """
    if is_blank(value):
        return fallback, True

    text = normalize_text(value)
    parsed = parse_strict_date(text) or parse_split_date(text)
    if parsed is None:
        logger.debug(f'Unparseable detection date {text!r}, using fallback')
        return fallback, True
    return parsed, False


def parse_sub_score(
    value: Any,
    minimum: int = 1,
    maximum: int = 5,
) -> Tuple[int, Optional[str]]:
    """
    Parse a criticality sub-score.

    Missing values default to the minimum. Numbers are rounded half-up and
    clamped to [minimum, maximum].

    Returns:
        Tuple of (score, error message or None)
    """
    if is_blank(value):
        return minimum, None

    text = str(value).strip().replace(',', '.')
    try:
        number = float(text)
    except ValueError:
        return minimum, f'not a number: {value!r}'
    if math.isnan(number) or math.isinf(number):
        return minimum, f'not a number: {value!r}'

    return clamp_score(round_half_up(number), minimum, maximum), None


def round_half_up(number: float) -> int:
    return int(math.floor(number + 0.5))


def clamp_score(score: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, score))
