"""Bearer credential lookup and stream URL authentication helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

TOKEN_PARAM = "token"
_REMOTE_SCHEMES = {"http", "https"}


class CredentialProvider(Protocol):
    """Source of the current bearer token from the host's auth session."""

    def get_token(self) -> str | None: ...


class StaticCredentialProvider:
    """Credential provider holding a token set by the host (login/logout)."""

    def __init__(self, token: str | None = None) -> None:
        self._token = _normalize_token(token)

    def set_token(self, token: str | None) -> None:
        self._token = _normalize_token(token)

    def get_token(self) -> str | None:
        return self._token


class TokenFileCredentialProvider:
    """Reads the token from a file on every lookup so re-logins are picked up."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def get_token(self) -> str | None:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Failed to read token file %s: %s", self._path, exc)
            return None
        return _normalize_token(raw)


def is_remote_url(url: str) -> bool:
    return urlsplit(url).scheme.lower() in _REMOTE_SCHEMES


def has_credential(url: str) -> bool:
    """Return whether the URL already carries the credential marker."""
    query = urlsplit(url).query
    return any(key == TOKEN_PARAM for key, _ in parse_qsl(query, keep_blank_values=True))


def with_credential(url: str, token: str | None) -> str:
    """Append `token` as a query parameter unless one is already present.

    Local paths and `file:`/`blob:` URLs are returned untouched, as is any URL
    when no token is available.
    """
    if not token or not is_remote_url(url) or has_credential(url):
        return url
    parts = urlsplit(url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    params.append((TOKEN_PARAM, token))
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment)
    )


def _normalize_token(value: str | None) -> str | None:
    if value is None:
        return None
    token = value.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return token or None
