"""
Request Fingerprinting
======================
Deterministic SHA-256 keys for caching and in-flight deduplication.
"""

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000


def _message_pair(message: Any) -> tuple[str, str]:
    if isinstance(message, Mapping):
        role, content = message.get("role", ""), message.get("content", "")
    else:
        role, content = message.role, message.content
    return str(role).strip().lower(), str(content).strip()


def normalize_request(
    provider: str,
    model: str,
    messages: Iterable[Any],
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> dict[str, Any]:
    """
    Build the canonical form of a request.

    Unset optional fields take the same defaults the providers apply, so a
    request that omits them collapses onto one that spells them out.
    """
    pairs = [list(_message_pair(m)) for m in messages]
    if not pairs:
        raise ValueError("Cannot fingerprint a request with no messages")

    return {
        "provider": provider.strip().lower(),
        "model": model.strip().lower(),
        "messages": pairs,
        "temperature": round(
            float(DEFAULT_TEMPERATURE if temperature is None else temperature), 4
        ),
        "max_tokens": int(DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens),
    }


def fingerprint(
    provider: str,
    model: str,
    messages: Iterable[Any],
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> str:
    """Return the hex SHA-256 digest of the normalized request."""
    normalized = normalize_request(provider, model, messages, temperature, max_tokens)
    payload = json.dumps(normalized, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
