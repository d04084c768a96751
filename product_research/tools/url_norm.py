"""
URL normalization utilities using tldextract
"""

from __future__ import annotations
import urllib.parse as _up
from typing import Iterable, List

import tldextract

# Bundled public-suffix snapshot only; classification must never hit the network
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())

_TRACKING_PARAMS = ("utm_", "yclid", "gclid", "fbclid", "_openstat", "from")


def canonicalize_url(url: str) -> str:
    """Lowercase scheme/host, drop fragments and tracking parameters."""
    u = (url or "").strip()
    if not u:
        return ""
    try:
        p = _up.urlparse(u)
    except ValueError:
        return u
    if not p.scheme or not p.netloc:
        return u
    query = [
        (k, v) for k, v in _up.parse_qsl(p.query, keep_blank_values=True)
        if not k.lower().startswith(_TRACKING_PARAMS)
    ]
    path = p.path or "/"
    return _up.urlunparse((p.scheme.lower(), p.netloc.lower(), path, "", _up.urlencode(query), ""))


def host_of(url: str) -> str:
    """Hostname without port and leading www."""
    try:
        host = (_up.urlparse(url or "").hostname or "").lower()
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def domain_of(url: str) -> str:
    """Registrable domain (e.g. 'max.nix.ru' -> 'nix.ru'), 'unknown' if none."""
    ext = _EXTRACT(url or "")
    root = ".".join([p for p in [ext.domain, ext.suffix] if p])
    return root.lower() or "unknown"


def host_matches(host: str, domain: str) -> bool:
    """True if host is the domain or one of its subdomains."""
    host = (host or "").lower()
    domain = (domain or "").lower()
    if not host or not domain:
        return False
    return host == domain or host.endswith("." + domain)


def dedupe_urls(urls: Iterable[str]) -> List[str]:
    """Canonicalize and de-duplicate, keeping first-seen order."""
    seen = set()
    out = []
    for u in urls:
        cu = canonicalize_url(u)
        if cu and cu not in seen:
            seen.add(cu)
            out.append(cu)
    return out
