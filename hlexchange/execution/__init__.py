"""
Execution package.

Action encoding, hashing, signing, submission and response validation,
composed by ExchangeClient.
"""

from hlexchange.execution.actions import (
    Acknowledged,
    BuilderFee,
    ExchangeResult,
    Filled,
    OrderError,
    OrderIntent,
    Resting,
    Signature,
    SignedRequest,
    TriggerSpec,
)
from hlexchange.execution.execution_gateway import ExchangeClient, ExchangeClientConfig, SubmitResult
from hlexchange.execution.hash_chain import action_hash
from hlexchange.execution.signer import Signer

__all__ = [
    "Acknowledged",
    "BuilderFee",
    "ExchangeResult",
    "Filled",
    "OrderError",
    "OrderIntent",
    "Resting",
    "Signature",
    "SignedRequest",
    "TriggerSpec",
    "ExchangeClient",
    "ExchangeClientConfig",
    "SubmitResult",
    "action_hash",
    "Signer",
]
