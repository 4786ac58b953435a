import hashlib
from datetime import UTC, datetime


def now() -> datetime:
    return datetime.now(UTC)


def token_digest(token: str) -> str:
    """Stable, non-reversible key for a secret token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
