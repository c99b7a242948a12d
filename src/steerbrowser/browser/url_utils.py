"""URL helpers for navigation correlation.

Outgoing requests are matched to the URL a caller asked to navigate to by
comparing both after normalization, so ``http://example.com`` and
``http://EXAMPLE.com/`` are the same navigation.
"""

import logging
import posixpath
import re
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

_SCHEME_PATTERN = re.compile(r'^(https?|file)://', re.IGNORECASE)
_ANY_SCHEME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.-]*:')


def ensure_scheme(url: str) -> str:
    """Prefix ``http://`` unless the URL already is http(s), file, or another explicit scheme like about:."""
    if _SCHEME_PATTERN.match(url):
        return url
    if _ANY_SCHEME_PATTERN.match(url) and not re.match(r'^[^:/]+:\d+', url):
        return url
    return f'http://{url}'


def rewrite_host(url: str, rewrites: dict[str, str] | None = None) -> str:
    """Replace the URL's host (or host:port) using ``rewrites``."""
    if not rewrites:
        return url
    parts = urlsplit(url)
    for candidate in (parts.netloc, parts.hostname or ''):
        if candidate and candidate in rewrites:
            replaced = parts._replace(netloc=rewrites[candidate])
            logger.debug(f'Rewrote {url} -> {urlunsplit(replaced)}')
            return urlunsplit(replaced)
    return url


def normalize_url(url: str, rewrites: dict[str, str] | None = None) -> str:
    """Normalize a URL for comparison.

    Applies host rewrites, lowercases scheme and host, gives an empty path
    ``/`` for hierarchical URLs and normalizes separators in file paths. The
    fragment is kept.
    """
    url = rewrite_host(url, rewrites)
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    path = parts.path
    if scheme == 'file':
        path = posixpath.normpath(path.replace('\\', '/')) if path else path
    elif scheme in ('http', 'https') and not path:
        path = '/'
    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def is_same_url(first: str, second: str, rewrites: dict[str, str] | None = None) -> bool:
    return normalize_url(first, rewrites) == normalize_url(second, rewrites)
