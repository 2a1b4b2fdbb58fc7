import re
import time
from typing import Optional
import bleach

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9.-]")
_OBJECT_KEY = re.compile(r"^[0-9]+-[A-Za-z0-9._-]+$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def clean_text(value: Optional[str]) -> str:
    """Clean a user-supplied string for storage, display and search.

    - Removes NULL bytes
    - Strips HTML tags using bleach.clean(..., strip=True)
    - Trims whitespace
    """
    if value is None:
        return ""
    val = value.replace("\x00", "")
    val = bleach.clean(val, tags=[], strip=True)
    # bleach escapes bare ampersands and angle brackets; keep the literal text
    val = val.replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">")
    return val.strip()


def sanitize_file_name(name: str) -> str:
    return _UNSAFE_KEY_CHARS.sub("_", name)


def make_object_key(original_name: str, now: Optional[float] = None) -> str:
    """Build a storage key of the form ``<epoch-millis>-<sanitized name>``."""
    millis = int((time.time() if now is None else now) * 1000)
    return f"{millis}-{sanitize_file_name(original_name)}"


def is_safe_object_key(key: Optional[str]) -> bool:
    return bool(key) and bool(_OBJECT_KEY.match(key))


def parse_positive_int(raw: Optional[str], default: int) -> int:
    """Lenient integer parsing for query strings: ``"3abc"`` -> 3, junk -> default."""
    if raw is None:
        return default
    m = _LEADING_INT.match(raw)
    if not m:
        return default
    value = int(m.group(1))
    return value if value >= 1 else default
