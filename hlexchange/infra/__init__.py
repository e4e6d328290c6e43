"""
Infrastructure package.

This package contains the info endpoint client, logging configuration,
and nonce management.
"""

from hlexchange.infra.async_info import InfoClient
from hlexchange.infra.logging_cfg import build_logger, log_event
from hlexchange.infra.nonce import NonceManager

__all__ = [
    "InfoClient",
    "build_logger",
    "log_event",
    "NonceManager",
]
