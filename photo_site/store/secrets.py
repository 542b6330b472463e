from __future__ import annotations

import hmac
import logging
from typing import Any, Optional, Protocol

import redis

logger = logging.getLogger(__name__)

DEFAULT_SECRETS_KEY = "secrets"
PHOTOGRAPHY_TOKEN_PATH = ("secrets", "photography_tools", "api_token")
SITE_API_CREDENTIALS_PATH = ("secrets", "express")


class SecretsProvider(Protocol):
    def get_secrets(self) -> dict: ...


class RedisSecretsProvider:
    """Read the secrets JSON document from a RedisJSON key.

    A connection is opened per lookup and always closed afterwards.
    """

    def __init__(self, url: str, key: str = DEFAULT_SECRETS_KEY) -> None:
        self.url = url
        self.key = key

    def get_secrets(self) -> dict:
        client = redis.from_url(self.url, decode_responses=True)
        try:
            document = client.json().get(self.key)
        finally:
            client.close()
        if not isinstance(document, dict):
            raise LookupError(f"Secrets key {self.key!r} does not hold a JSON object")
        return document


def lookup(document: dict, path: tuple[str, ...]) -> Optional[Any]:
    node: Any = document
    for part in path:
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def _matches(provided: Optional[str], expected: Any) -> bool:
    if not provided or not isinstance(expected, str) or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def photography_token_valid(secrets: dict, token: Optional[str]) -> bool:
    valid = _matches(token, lookup(secrets, PHOTOGRAPHY_TOKEN_PATH))
    if not valid:
        logger.warning("Rejected photography request with an invalid token")
    return valid


def site_credentials_valid(
    secrets: dict, username: Optional[str], password: Optional[str]
) -> bool:
    stored = lookup(secrets, SITE_API_CREDENTIALS_PATH)
    if not isinstance(stored, dict):
        stored = {}
    valid = _matches(username, stored.get("username")) and _matches(
        password, stored.get("password")
    )
    if not valid:
        logger.warning("Authorization failed for username %r", username)
    return valid
