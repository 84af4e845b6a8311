"""Header values for the Basic and WSSE authentication modes."""

import base64
import hashlib
import uuid
from datetime import UTC, datetime


def basic_credentials(username: str, password: str) -> str:
    """Value for ``Authorization: Basic ...``."""
    raw = f"{username}:{password}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def wsse_token(
    username: str,
    password: str,
    created: datetime | None = None,
    nonce: str | None = None,
) -> str:
    """
    Value for the ``X-WSSE`` header.

    PasswordDigest = base64(sha1(nonce + created + md5hex(password))) and
    Nonce = base64(nonce), with ``created`` formatted as UTC
    ``YYYY-MM-DDTHH:MM:SSZ``.
    """
    created_at = (created or datetime.now(UTC)).astimezone(UTC)
    created_str = created_at.strftime("%Y-%m-%dT%H:%M:%SZ")
    nonce = nonce if nonce is not None else uuid.uuid4().hex

    password_hash = hashlib.md5(password.encode("utf-8")).hexdigest()
    digest_source = (nonce + created_str + password_hash).encode("utf-8")
    password_digest = base64.b64encode(hashlib.sha1(digest_source).digest()).decode("ascii")
    encoded_nonce = base64.b64encode(nonce.encode("utf-8")).decode("ascii")

    return (
        f'UsernameToken Username="{username}", PasswordDigest="{password_digest}", '
        f'Nonce="{encoded_nonce}", Created="{created_str}"'
    )


__all__ = ["basic_credentials", "wsse_token"]
