"""
hlexchange: signing and submission pipeline for Hyperliquid exchange actions.
"""

from hlexchange.core.errors import (
    ApiError,
    HyperliquidError,
    SignerError,
    TransportError,
    UnknownAsset,
    ValidationError,
)
from hlexchange.execution import (
    BuilderFee,
    ExchangeClient,
    ExchangeClientConfig,
    ExchangeResult,
    OrderIntent,
    SubmitResult,
    TriggerSpec,
)

__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "HyperliquidError",
    "SignerError",
    "TransportError",
    "UnknownAsset",
    "ValidationError",
    "BuilderFee",
    "ExchangeClient",
    "ExchangeClientConfig",
    "ExchangeResult",
    "OrderIntent",
    "SubmitResult",
    "TriggerSpec",
]
