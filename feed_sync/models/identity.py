"""Link-derived identity for articles and feeds.

Two links share an identity when their host and path match case-insensitively.
Scheme, port, query string and fragment are ignored. Percent-escapes of
reserved path characters stay encoded.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

_ESCAPE = re.compile(r"%([0-9A-Fa-f]{2})")
# Escapes of these characters change a path's structure and stay encoded.
_RESERVED = set(":/?#[]@!$&'()*+,;=%")


def _unquote_unreserved(path: str) -> str:
    """Decode ASCII percent-escapes except those of reserved characters."""

    def decode(match: "re.Match[str]") -> str:
        code = int(match.group(1), 16)
        if code >= 0x80 or chr(code) in _RESERVED:
            return match.group(0).upper()
        return chr(code)

    return _ESCAPE.sub(decode, path)


@dataclass(frozen=True)
class ArticleIdentity:
    """Normalized (host, path) key used for deduplication and favorites lookup."""

    host: str
    path: str

    @classmethod
    def from_link(cls, link: str) -> "ArticleIdentity":
        """Derive the identity of a link.

        Args:
            link: Absolute URL

        Returns:
            The normalized identity

        Raises:
            ValueError: If the link has no host
        """
        parts = urlsplit(link.strip())
        host = (parts.hostname or "").lower()
        if not host:
            raise ValueError(f"Link has no host: {link!r}")

        path = _unquote_unreserved(parts.path).lower()
        if not path:
            path = "/"
        return cls(host=host, path=path)

    def __str__(self) -> str:
        return f"{self.host}{self.path}"


def identity_of(link: Optional[str]) -> Optional[ArticleIdentity]:
    """Return the identity of a link, or None when it cannot be derived."""
    if not link:
        return None
    try:
        return ArticleIdentity.from_link(link)
    except ValueError:
        return None
