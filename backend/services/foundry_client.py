"""
Microsoft Foundry Direct Model Client

Backs the AI collaborators: location extraction from report text and image
verification. Both callers fall back to deterministic behaviour when the
endpoint is not configured or a call fails.

The SDK client is synchronous, so callers run ``complete`` through
``asyncio.to_thread`` under ``asyncio.wait_for``. The SDK's own retries are
disabled (``max_retries=0``) so that EXTERNAL_TIMEOUT_SECONDS bounds the
whole call. Replies are expected as JSON objects; ``parse_json_reply``
tolerates a Markdown code fence around them.

Endpoint pattern:
    https://<resource>.openai.azure.com/openai/v1/

Auth:
    ManagedIdentityCredential → token used as api_key
    Scope: https://cognitiveservices.azure.com/.default
"""

import json
import logging

from azure.identity import ManagedIdentityCredential
from openai import OpenAI

from config import settings

logger = logging.getLogger(__name__)

FOUNDRY_AUTH_SCOPE = "https://cognitiveservices.azure.com/.default"

_credential = None
_client = None


def _get_credential():
    """Get Azure credential via User-Assigned Managed Identity."""
    if not settings.managed_identity_client_id:
        raise ValueError("MANAGED_IDENTITY_CLIENT_ID environment variable is required")
    return ManagedIdentityCredential(client_id=settings.managed_identity_client_id)


def _get_token() -> str:
    global _credential
    if _credential is None:
        _credential = _get_credential()
    token = _credential.get_token(FOUNDRY_AUTH_SCOPE)
    return token.token


def _get_client() -> OpenAI:
    """Return cached OpenAI client, creating on first call.

    Azure MSI tokens last ~24h; for long-running processes a restart
    or token-refresh wrapper would be needed.
    """
    global _client
    if _client is None:
        if not settings.foundry_endpoint:
            raise ValueError("FOUNDRY_ENDPOINT environment variable is required")
        _client = OpenAI(
            base_url=settings.foundry_endpoint,
            api_key=_get_token(),
            timeout=settings.external_timeout_seconds,
            max_retries=0,
        )
    return _client


def complete(
    messages: list[dict],
    temperature: float = 0.2,
    max_tokens: int = 300,
) -> str:
    """
    Call Foundry model with chat messages, return assistant response text.
    """
    client = _get_client()

    completion = client.chat.completions.create(
        model=settings.foundry_model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
    )

    content = completion.choices[0].message.content
    if content is None:
        raise ValueError("Model returned empty response (no content)")
    return content


def parse_json_reply(reply: str) -> dict:
    """Parse a JSON object from a model reply, stripping markdown fences if present."""
    clean = reply.strip()
    if clean.startswith("```"):
        clean = clean.split("\n", 1)[1].rsplit("```", 1)[0].strip()
    parsed = json.loads(clean)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
