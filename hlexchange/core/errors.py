"""
Error taxonomy for the action pipeline.

Every error carries the pipeline stage it failed in and an error kind so
callers can tell pre-flight failures (nothing reached the venue) apart from
failures after submission.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class Stage(str, Enum):
    """Pipeline stages, in execution order."""
    BUILT = "built"
    ENCODED = "encoded"
    HASHED = "hashed"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    TRANSPORT_FAILED = "transport_failed"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNKNOWN_ASSET = "unknown_asset"
    SIGNER = "signer"
    TRANSPORT = "transport"
    API = "api"


# Stages at which nothing has been sent to the venue yet.
_PREFLIGHT_STAGES = {Stage.BUILT, Stage.ENCODED, Stage.HASHED, Stage.SIGNED}


class HyperliquidError(Exception):
    """Base class for all pipeline failures."""

    kind: ErrorKind = ErrorKind.VALIDATION
    default_stage: Stage = Stage.BUILT

    def __init__(self, message: str, *, stage: Optional[Stage] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage

    @property
    def preflight(self) -> bool:
        """True when the failure happened before any network submission."""
        return self.stage in _PREFLIGHT_STAGES


class ValidationError(HyperliquidError):
    kind = ErrorKind.VALIDATION
    default_stage = Stage.BUILT


class EmptyOrderBatch(ValidationError):
    def __init__(self, message: str = "At least one order is required.") -> None:
        super().__init__(message)


class NonFiniteValue(ValidationError):
    def __init__(self, value: Any) -> None:
        super().__init__(f"Numeric values must be finite, got {value!r}")
        self.value = value


class InvalidIntent(ValidationError):
    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class UnknownAsset(HyperliquidError):
    """Symbol is not in the current universe. Retry after a cache refresh."""

    kind = ErrorKind.UNKNOWN_ASSET
    default_stage = Stage.BUILT

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Unknown Hyperliquid asset symbol: {symbol}")
        self.symbol = symbol


class SignerError(HyperliquidError):
    kind = ErrorKind.SIGNER
    default_stage = Stage.HASHED


class SigningUnavailable(SignerError, ValidationError):
    kind = ErrorKind.SIGNER

    def __init__(
        self,
        message: str = "Hyperliquid action signing requires a wallet with signing capabilities.",
    ) -> None:
        super().__init__(message)


class MalformedSignature(SignerError):
    def __init__(self, message: str = "Invalid signature returned by wallet client.", raw: Any = None) -> None:
        super().__init__(message)
        self.raw = raw


class TransportError(HyperliquidError):
    """HTTP-level failure or unparsable body. Safe to retry with a fresh nonce."""

    kind = ErrorKind.TRANSPORT
    default_stage = Stage.TRANSPORT_FAILED

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Any = None,
        stage: Optional[Stage] = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.status_code = status_code
        self.body = body


class ApiError(HyperliquidError):
    """The venue explicitly rejected the action or some of its orders."""

    kind = ErrorKind.API
    default_stage = Stage.REJECTED

    def __init__(self, message: str, response: Any) -> None:
        super().__init__(message)
        self.response = response
