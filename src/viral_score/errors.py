"""
Error taxonomy shared across the service.

Each error maps to an outcome callers can distinguish:
- ConfigurationError: a component is not configured (e.g. no signer key)
- NotFoundError: unknown symbol, pool or epoch
- ValidationError: malformed input rejected before processing
- ExternalUnavailableError: liquidity indexer, chain RPC or feed unreachable
- OnChainRejectedError: a transaction reverted or was never confirmed

Expected negative outcomes ("epoch already submitted", stale data) are
not errors; they are reported through result objects.
"""
from __future__ import annotations

from typing import Optional


class ViralScoreError(Exception):
    """Base exception for the service."""


class ConfigurationError(ViralScoreError):
    """Component not configured; the dependent feature is disabled."""


class NotFoundError(ViralScoreError):
    """Requested entity does not exist."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class ValidationError(ViralScoreError):
    """Input rejected before processing."""


class EmptyBatchError(ValidationError):
    """A batch operation was given nothing to work on."""


class ExternalUnavailableError(ViralScoreError):
    """An external collaborator could not be reached."""

    def __init__(self, message: str, source: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class OnChainRejectedError(ViralScoreError):
    """Transaction reverted, failed or was not confirmed in time."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class InvariantViolationError(ViralScoreError):
    """Internal invariant broken. The process should stop."""
