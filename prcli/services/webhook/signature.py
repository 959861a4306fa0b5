from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def validate_github_signature(secret: str | None, body: bytes, header: str | None) -> bool:
    """Check ``X-Hub-Signature-256``; always passes when no secret is configured."""
    if not secret:
        return True
    if not header or not header.startswith(SIGNATURE_PREFIX):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, header[len(SIGNATURE_PREFIX) :])


def validate_gitlab_token(secret: str | None, header: str | None) -> bool:
    if not secret:
        return True
    return hmac.compare_digest(secret.encode("utf-8"), (header or "").encode("utf-8"))


def repository_allowed(allowed: list[str], owner: str, repo: str) -> bool:
    """Entries are ``owner/repo``, ``owner/*`` or ``*``; an empty list allows everything."""
    if not allowed:
        return True
    full_name = f"{owner}/{repo}".lower()
    for entry in allowed:
        pattern = entry.strip().lower()
        if pattern == "*" or pattern == full_name:
            return True
        if pattern.endswith("/*") and pattern[:-2] == owner.lower():
            return True
    return False
