"""
Core utilities package.

This package contains the error taxonomy, decimal canonicalization,
JSON helpers and hex/address utilities.
"""

from hlexchange.core.decimal_codec import DecimalLike, to_api_decimal
from hlexchange.core.errors import (
    ApiError,
    EmptyOrderBatch,
    ErrorKind,
    HyperliquidError,
    InvalidIntent,
    MalformedSignature,
    NonFiniteValue,
    SignerError,
    SigningUnavailable,
    Stage,
    TransportError,
    UnknownAsset,
    ValidationError,
)
from hlexchange.core.utils import now_ms, normalize_address, normalize_cloid, strip_hex

__all__ = [
    "DecimalLike",
    "to_api_decimal",
    "ApiError",
    "EmptyOrderBatch",
    "ErrorKind",
    "HyperliquidError",
    "InvalidIntent",
    "MalformedSignature",
    "NonFiniteValue",
    "SignerError",
    "SigningUnavailable",
    "Stage",
    "TransportError",
    "UnknownAsset",
    "ValidationError",
    "now_ms",
    "normalize_address",
    "normalize_cloid",
    "strip_hex",
]
