"""
Shared utility modules for glasslink.
"""

from .retry_utils import Bounded, ReconnectPolicy, RetryUtils, Unbounded

__all__ = ["Bounded", "ReconnectPolicy", "RetryUtils", "Unbounded"]
