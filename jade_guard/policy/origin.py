"""Policy layer — Origin normalisation.

An origin is the lower-cased hostname of a URL with one leading ``www.``
removed.  Bare hostnames are accepted as-is.  Host-less URLs such as
``about:blank`` or ``data:`` documents keep their full text; strings that
do not parse as a URL are returned unchanged so that a malformed input
still maps to a (unique, all-disabled) policy scope instead of failing.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

_WWW = "www."
# "scheme:" not followed by a port number.
_OPAQUE_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:(?!\d)")


def normalize_origin(value: str) -> str:
    """Return the policy scope for a URL or hostname.

    ::

        normalize_origin("https://www.Example.com/a?b")  → "example.com"
        normalize_origin("localhost:8080")               → "localhost"
        normalize_origin("github.com")                   → "github.com"
        normalize_origin("about:blank")                  → "about:blank"
    """
    raw = value.strip()
    if not raw:
        return raw
    if "://" not in raw and _OPAQUE_SCHEME.match(raw):
        return raw
    candidate = raw if "://" in raw else f"//{raw}"
    try:
        host = urlsplit(candidate).hostname
    except ValueError:
        return raw
    if not host:
        return raw
    if host.startswith(_WWW):
        host = host[len(_WWW):]
    return host
