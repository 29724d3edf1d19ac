from datetime import datetime
import re

# Characters that cannot appear in a single URL path segment
_UNSAFE_SEGMENT_CHARS = re.compile(r'[\/\?<>\\:\*\|"#%\s\x00-\x1f\x80-\x9f]')
_RESERVED_SEGMENTS = {".", ".."}
_MAX_SEGMENT_LENGTH = 255

def sanitize_uri(name: str, replacement: str = "") -> str:
    """
    Turn an arbitrary name into something usable as a route URI.

    Strips separators, query/fragment markers, whitespace and control
    characters, drops trailing dots and refuses the "." and ".." segments.
    Example: "My Parking-Read-status?" -> "MyParking-Read-status"

    Args:
        name: Raw name, usually built from a Thing and interaction name
        replacement: String used in place of each unsafe character

    Returns:
        A sanitized path segment, possibly empty
    """
    sanitized = _UNSAFE_SEGMENT_CHARS.sub(replacement, name)
    sanitized = sanitized.rstrip(". ")
    if sanitized in _RESERVED_SEGMENTS:
        return ""
    return sanitized[:_MAX_SEGMENT_LENGTH]

def timestamp_now() -> str:
    """Current local time in the sortable form used by history records: 2024-01-07T12:34:56"""
    return datetime.now().strftime('%Y-%m-%dT%H:%M:%S')
