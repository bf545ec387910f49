# app/providers/validate.py
from __future__ import annotations

import logging
from typing import Iterable

from app.providers.factory import ProviderRegistry
from settings import settings

logger = logging.getLogger("payouts.providers")


def _sorted_csv(items: Iterable[str]) -> str:
    return ", ".join(sorted(set(items)))


def validate_settlement_startup(registry: ProviderRegistry) -> list[str]:
    """
    Check every registered provider's credentials.

    Returns the processor types whose check failed. In strict mode any failure
    (or an empty registry) aborts startup with RuntimeError.
    """
    strict = bool(settings.SETTLEMENT_STRICT_STARTUP_VALIDATION)
    names = registry.names()

    logger.info(
        "settlement startup check: strict=%s providers=%s",
        strict,
        ",".join(names) if names else "<none>",
    )

    if not names:
        if strict:
            raise RuntimeError("Settlement startup validation failed. No providers configured.")
        return []

    failed = []
    for name, provider in registry.items():
        try:
            ok = bool(provider.verify_credentials())
        except Exception as exc:
            logger.warning("settlement credential check raised provider=%s err=%s", name, exc)
            ok = False
        if not ok:
            failed.append(name)

    if failed:
        logger.error("settlement credentials invalid for: %s", _sorted_csv(failed))
        if strict:
            raise RuntimeError(
                "Settlement startup validation failed. Invalid credentials for: " + _sorted_csv(failed)
            )
    return failed
