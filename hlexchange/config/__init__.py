"""
Configuration package.
"""

from hlexchange.config.config import API_BASES, Settings, infer_environment

__all__ = [
    "API_BASES",
    "Settings",
    "infer_environment",
]
