"""Small helpers shared by the layers."""
from typing import Any, List, Sequence, TypeVar
import hashlib
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')


def chunk_list(lst: Sequence[T], chunk_size: int) -> List[List[T]]:
    """Consecutive slices of at most `chunk_size` items; the last one may be shorter."""
    if chunk_size < 1:
        raise ValueError(f'chunk_size must be positive, got {chunk_size}')
    return [list(lst[i:i + chunk_size]) for i in range(0, len(lst), chunk_size)]


def content_hash(*parts: Any) -> str:
    """Stable sha256 over the string form of the parts."""
    joined = '\x1f'.join('' if p is None else str(p) for p in parts)
    return hashlib.sha256(joined.encode('utf-8')).hexdigest()


def truncate_title(text: str, limit: int = 100, min_break: int = 50) -> str:
    """
    Shorten text to at most `limit` characters, cutting on the last word
    boundary after `min_break`, and mark truncation with '...'.
    """
    if len(text) <= limit:
        return text
    title = text[:limit]
    last_space = title.rfind(' ')
    if last_space > min_break:
        title = title[:last_space]
    return title.rstrip() + '...'


def format_duration(seconds: float) -> str:
    """
    Format seconds to human-readable duration.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., '1h 30m 45s')
    """
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    parts = []
    if hours:
        parts.append(f'{hours}h')
    if minutes:
        parts.append(f'{minutes}m')
    if secs:
        parts.append(f'{secs}s')

    return ' '.join(parts) or '0s'
