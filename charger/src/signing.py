"""
Request signing for the SolisCloud API.

Every request is authenticated with an HMAC-SHA1 signature over a canonical
string built from the HTTP method, the body's MD5 digest, the content type,
the request date and the target path::

    POST\\n{Content-MD5}\\napplication/json\\n{Date}\\n{path}

The digest and date are part of the signed input, so a fresh
:class:`SignedRequest` must be built for every request.  This module is pure:
no I/O and no clock (the caller passes the timestamp).

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import format_datetime

from charger.src.errors import ConfigurationError

METHOD = "POST"
CONTENT_TYPE = "application/json"


@dataclass(frozen=True, slots=True)
class SignedRequest:
    """Everything needed to send one authenticated request.

    Attributes:
        path: API path the signature covers (e.g. ``/v1/api/inverterDetail``).
        body: Exact serialized body bytes that were digested.
        content_md5: base64 MD5 digest of ``body``.
        date: RFC 1123 GMT date string.
        signature: base64 HMAC-SHA1 of the canonical string.
        authorization: ``API {key_id}:{signature}``.
    """

    path: str
    body: bytes
    content_md5: str
    date: str
    signature: str
    authorization: str

    def headers(self) -> dict[str, str]:
        """Return the HTTP headers that carry the signature."""
        return {
            "Content-MD5": self.content_md5,
            "Content-Type": CONTENT_TYPE,
            "Date": self.date,
            "Authorization": self.authorization,
        }


def content_md5(body: bytes) -> str:
    """Return base64(MD5(body))."""
    return base64.b64encode(hashlib.md5(body).digest()).decode("ascii")


def http_date(ts: datetime) -> str:
    """Render *ts* as an HTTP date, e.g. ``Wed, 01 Jan 2025 00:00:00 GMT``.

    Raises:
        ConfigurationError: If *ts* is naive (no timezone).
    """
    if ts.tzinfo is None:
        raise ConfigurationError("Signing timestamp must be timezone-aware")
    return format_datetime(ts.astimezone(UTC), usegmt=True)


def canonical_string(content_md5_b64: str, date: str, path: str) -> str:
    """Build the string-to-sign."""
    return f"{METHOD}\n{content_md5_b64}\n{CONTENT_TYPE}\n{date}\n{path}"


def sign(canonical: str, key_secret: str) -> str:
    """Return base64(HMAC-SHA1(canonical, key_secret)).

    Raises:
        ConfigurationError: If the secret is empty.
    """
    if not key_secret:
        raise ConfigurationError("API key secret is empty; cannot sign requests")
    digest = hmac.new(
        key_secret.encode("utf-8"),
        canonical.encode("utf-8"),
        hashlib.sha1,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def sign_request(
    *,
    path: str,
    body: bytes,
    key_id: str,
    key_secret: str,
    now: datetime,
) -> SignedRequest:
    """Compute digest, date, signature and authorization for one request.

    Args:
        path: API path (must match the path actually requested).
        body: Serialized JSON body, exactly as it will be sent.
        key_id: API key id.
        key_secret: API key secret.
        now: Timezone-aware request timestamp.

    Returns:
        A :class:`SignedRequest` ready to be sent.
    """
    md5_b64 = content_md5(body)
    date = http_date(now)
    signature = sign(canonical_string(md5_b64, date, path), key_secret)
    return SignedRequest(
        path=path,
        body=body,
        content_md5=md5_b64,
        date=date,
        signature=signature,
        authorization=f"API {key_id}:{signature}",
    )
