"""
Cross-cutting handlers shared by the connectivity components.

Components:
- EventRouter: single handler per event kind, sequential delivery per kind
- ErrorHandler: error funnel that logs, journals and runs callbacks
"""

from .error_handler import ErrorContext, ErrorHandler, ErrorInfo, ErrorSeverity
from .event_router import EventRouter, SubscriptionHandle

__all__ = [
    "ErrorContext",
    "ErrorHandler",
    "ErrorInfo",
    "ErrorSeverity",
    "EventRouter",
    "SubscriptionHandle",
]
