"""Target-URL rules for the shorten pipeline.

Functions:
    has_scheme():  Whether a URL carries an explicit ``scheme://``.
    enforce_scheme():  Prepend ``https://`` to scheme-less URLs.
    is_valid_url():  Well-formed absolute URL check (validators library).
    is_allowed():  Domain policy decision (own domain + denylist).
    build_short_url():  Absolute short URL from the public domain or request base.
"""

import re
from urllib.parse import urlsplit

import validators

__all__ = [
    "DEFAULT_SCHEME",
    "build_short_url",
    "enforce_scheme",
    "has_scheme",
    "is_allowed",
    "is_valid_url",
]

DEFAULT_SCHEME = "https"

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)


def has_scheme(url: str) -> bool:
    return bool(_SCHEME_RE.match(url))


def enforce_scheme(url: str) -> str:
    if has_scheme(url):
        return url
    return f"{DEFAULT_SCHEME}://{url}"


def is_valid_url(url: str) -> bool:
    """Accept absolute URLs, and bare hosts such as ``example.com/page``.

    Bare hosts are checked as if they already carried ``https://``, which is
    what they will be stored as.
    """
    url = url.strip()
    if not url or any(ch.isspace() for ch in url):
        return False
    return bool(validators.url(enforce_scheme(url)))


def _host(value: str) -> str:
    host = urlsplit(enforce_scheme(value.strip())).hostname or ""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def is_allowed(url: str, own_domain: str = "", denied_domains: list[str] | None = None) -> bool:
    """Return False when the URL points back at this service or at a denied host.

    Denied entries also match their subdomains.
    """
    host = _host(url)
    if not host:
        return False
    if own_domain and host == _host(own_domain):
        return False
    for denied in denied_domains or []:
        denied = _host(denied)
        if host == denied or host.endswith(f".{denied}"):
            return False
    return True


def build_short_url(code: str, domain: str = "", request_base_url: str = "") -> str:
    if domain:
        base = enforce_scheme(domain)
    else:
        base = request_base_url
    return f"{base.rstrip('/')}/{code}"
