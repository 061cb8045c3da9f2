"""Side-channel reporting for bookkeeping writes that must not block primary state."""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk

from .projection import LabState

# purpose: surface outcome and audit logging failures without raising into the caller
# inputs: projection handle, failure kind, exception, identifying detail
# outputs: log record, Sentry event, LabEvent for projection listeners
# status: active

logger = logging.getLogger(__name__)


def report_failure(
    state: LabState,
    kind: str,
    error: BaseException,
    **detail: Any,
) -> None:
    """Record a swallowed bookkeeping failure out-of-band."""

    logger.warning("%s failed for user %s: %s", kind, state.actor_id, error, extra={"detail": detail})
    sentry_sdk.capture_exception(error)
    state.emit(f"{kind}.failed", error=str(error), **{k: str(v) for k, v in detail.items()})
