"""
Monitoring and observability package.
"""

from hlexchange.monitoring.metrics_rich import ExchangeMetrics

__all__ = ["ExchangeMetrics"]
