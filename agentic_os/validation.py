"""Credential validation: one probe request per check, no retries."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .errors import ProviderError
from .llm import create_adapter
from .models import Provider, ValidationOutcome

logger = logging.getLogger(__name__)

EMPTY_CREDENTIAL = "empty credential"


async def validate(
    provider: Provider,
    secret: str,
    model: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ValidationOutcome:
    """Check ``secret`` against ``provider`` with a single probe request.

    Args:
        provider: Provider to validate against.
        secret: Candidate API key. Blank keys are rejected without a request.
        model: Model to probe with (defaults to the configured model).
        client: Optional shared HTTP client.

    Returns:
        ``ValidationOutcome`` with ``ok`` and a human-readable ``reason``.
    """
    if not secret or not secret.strip():
        return ValidationOutcome(provider, ok=False, reason=EMPTY_CREDENTIAL)

    adapter = create_adapter(provider, secret.strip(), model=model, client=client)
    try:
        await adapter.probe()
    except ProviderError as exc:
        logger.info("Validation for %s failed: %s", provider.value, exc.message)
        return ValidationOutcome(provider, ok=False, reason=exc.message)
    except Exception as exc:
        logger.warning("Unexpected validation error for %s: %s", provider.value, exc)
        return ValidationOutcome(provider, ok=False, reason=f"Validation error: {exc}")
    return ValidationOutcome(provider, ok=True, reason=f"{provider.display_name} API key validated successfully")
