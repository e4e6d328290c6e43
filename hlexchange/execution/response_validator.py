"""
ResponseValidator: turns the venue's /exchange answer into an ExchangeResult
or a typed failure.

Expected shapes:
    {"status": "ok", "response": {"type": "order", "data": {"statuses": [...]}}}
    {"status": "ok", "response": {"type": "cancel", "data": {"statuses": ["success", ...]}}}
    {"status": "ok", "response": {"type": "default"}}
    {"status": "err", "response": "<message>"}

Anything else is treated as a TransportError rather than guessed at.
"""

from __future__ import annotations

from typing import Any, List

import httpx

from hlexchange.core.errors import ApiError, TransportError
from hlexchange.execution.actions import (
    Acknowledged,
    ExchangeResult,
    Filled,
    OrderError,
    OrderOutcome,
    Resting,
)

# response types that carry a positional statuses list
_STATUS_TYPES = {"order", "cancel", "cancelByCloid"}


def _unrecognized(what: str, data: Any) -> TransportError:
    return TransportError(f"Unrecognized Hyperliquid response: {what}", body=data)


def _optional_cloid(entry: dict) -> Any:
    cloid = entry.get("cloid")
    return cloid if isinstance(cloid, str) else None


def parse_status(entry: Any, data: Any) -> OrderOutcome:
    if isinstance(entry, str):
        return Acknowledged(entry)
    if not isinstance(entry, dict):
        raise _unrecognized(f"status entry {entry!r}", data)

    if "error" in entry:
        return OrderError(str(entry["error"]))

    resting = entry.get("resting")
    if isinstance(resting, dict) and isinstance(resting.get("oid"), int):
        return Resting(oid=resting["oid"], cloid=_optional_cloid(resting))

    filled = entry.get("filled")
    if isinstance(filled, dict) and isinstance(filled.get("oid"), int):
        return Filled(
            total_sz=str(filled.get("totalSz", "")),
            avg_px=str(filled.get("avgPx", "")),
            oid=filled["oid"],
            cloid=_optional_cloid(filled),
        )

    raise _unrecognized(f"status entry {entry!r}", data)


def parse_response(data: Any) -> ExchangeResult:
    """Validate a decoded /exchange response body."""
    if not isinstance(data, dict) or "status" not in data:
        raise _unrecognized("missing status", data)

    if data["status"] != "ok":
        detail = data.get("response")
        message = detail if isinstance(detail, str) and detail else "Hyperliquid API returned an error status."
        raise ApiError(message, data)

    response = data.get("response")
    if response is None:
        return ExchangeResult(response_type="default", raw=data)
    if not isinstance(response, dict):
        raise _unrecognized("response is not an object", data)

    response_type = str(response.get("type", "default"))
    statuses: List[OrderOutcome] = []
    if response_type in _STATUS_TYPES:
        payload = response.get("data")
        raw_statuses = payload.get("statuses") if isinstance(payload, dict) else None
        if not isinstance(raw_statuses, list):
            raise _unrecognized("statuses list missing", data)
        statuses = [parse_status(entry, data) for entry in raw_statuses]

    errors = [s.message for s in statuses if isinstance(s, OrderError)]
    if errors:
        message = ", ".join(errors)
        raise ApiError(message or "Hyperliquid rejected the order.", data)

    return ExchangeResult(response_type=response_type, statuses=statuses, raw=data)


def validate(response: httpx.Response) -> ExchangeResult:
    """Check HTTP status and body, then parse."""
    try:
        data = response.json()
    except ValueError:
        data = None

    if not response.is_success or data is None:
        raise TransportError(
            "Failed to submit Hyperliquid action.",
            status_code=response.status_code,
            body=data if data is not None else {"status": response.status_code, "text": response.text},
        )
    return parse_response(data)
