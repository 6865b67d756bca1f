"""
Sanitizers for user-supplied strings that reach SQL, the network or disk.

- search terms interpolated into LIKE patterns (OWASP A03)
- notification webhook targets (SSRF, OWASP A10)
- evidence upload filenames
"""

import ipaddress
import re
from typing import Optional
from urllib.parse import urlsplit

_LIKE_ESCAPES = str.maketrans({"\\": "\\\\", "%": "\\%", "_": "\\_"})
_LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain"})
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_like_input(query: str) -> str:
    r"""Escape LIKE wildcards; pair with ``ilike(..., escape="\\")``."""
    return query.translate(_LIKE_ESCAPES)


def _blocked_address(host: str) -> Optional[str]:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if ip.is_loopback or ip.is_unspecified:
        return f"Localhost ({host}) is not allowed"
    if ip.is_private or ip.is_link_local or ip.is_reserved or ip.is_multicast:
        return f"Private/reserved IP address: {host}"
    return None


def validate_webhook_url(url: Optional[str]) -> tuple[bool, str]:
    """
    Check that a webhook target is an external HTTP(S) endpoint.

    Hostnames are accepted as written; only IP literals are range-checked.
    Returns (is_valid, reason).
    """
    if not url or not isinstance(url, str):
        return False, "URL is empty or invalid"
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return False, "Malformed URL"

    if parts.scheme not in ("http", "https"):
        return False, f"Invalid scheme: {parts.scheme or '(none)'}. Only HTTP(S) allowed."
    if parts.username or parts.password:
        return False, "URLs with embedded credentials are not allowed"
    if not host:
        return False, "No hostname in URL"

    host = host.lower()
    if host in _LOCAL_HOSTNAMES or host.endswith(".localhost"):
        return False, f"Localhost ({host}) is not allowed"

    reason = _blocked_address(host)
    return (False, reason) if reason else (True, "OK")


def sanitize_filename(filename: Optional[str], max_length: int = 150) -> str:
    """Basename of an uploaded file with anything outside [A-Za-z0-9._-] replaced."""
    basename = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", basename).strip("._")
    return (cleaned or "file")[:max_length]
