"""
Centralized error handling with journal integration and callback support.

Every failure in the connectivity layer, recovered or terminal, is funnelled
through :class:`ErrorHandler`, which:

- logs it at a level derived from its severity
- appends exactly one entry to the activity journal
- keeps per-context counters
- runs registered callbacks with error isolation

Usage:
    handler = ErrorHandler(journal=journal)

    await handler.handle_error(
        exc,
        context=ErrorContext.AUDIO,
        severity=ErrorSeverity.MEDIUM,
        operation="decode",
        message="Audio decode failed",
    )
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from glasslink.journal import ActivityJournal
from glasslink.models.state import JournalKind


class ErrorContext(Enum):
    """Error context types for categorizing errors."""

    EVENT_CHANNEL = "event_channel"
    PERIPHERAL = "peripheral"
    AUDIO = "audio"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorInfo:
    """Simple error information structure."""

    error: Exception
    context: ErrorContext
    severity: ErrorSeverity
    operation: str
    metadata: Dict[str, Any]
    timestamp: datetime


_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.DEBUG,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


class ErrorHandler:
    """
    Error funnel shared by the event channel, peripheral link and audio relay.

    One instance is constructed per companion client and injected into each
    component.
    """

    def __init__(
        self,
        journal: Optional[ActivityJournal] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.journal = journal
        self.logger = logger or logging.getLogger(__name__)
        self._handlers: Dict[ErrorContext, List[Callable]] = {
            context: [] for context in ErrorContext
        }
        self._global_handlers: List[Callable] = []
        self._error_count: Dict[ErrorContext, int] = {
            context: 0 for context in ErrorContext
        }

    def register_handler(
        self,
        handler: Callable[[ErrorInfo], Any],
        context: Optional[ErrorContext] = None,
    ) -> None:
        """
        Register an error handler for a specific context or globally.

        Args:
            handler: Error handler function that takes ErrorInfo as parameter
            context: Error context to handle (None for global handlers)
        """
        if context is None:
            self._global_handlers.append(handler)
            self.logger.debug("Registered global error handler")
        else:
            self._handlers[context].append(handler)
            self.logger.debug(f"Registered error handler for {context.value}")

    def unregister_handler(
        self, handler: Callable, context: Optional[ErrorContext] = None
    ) -> bool:
        """Unregister an error handler. Returns True if it was registered."""
        target_list = (
            self._global_handlers if context is None else self._handlers[context]
        )

        if handler in target_list:
            target_list.remove(handler)
            return True
        return False

    async def handle_error(
        self,
        error: Exception,
        context: ErrorContext = ErrorContext.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        operation: str = "unknown",
        message: Optional[str] = None,
        **metadata,
    ) -> ErrorInfo:
        """
        Handle an error using registered callbacks.

        Args:
            error: The exception that occurred
            context: Error context for categorization
            severity: Error severity level
            operation: Name of the operation that failed
            message: Journal text; defaults to "<operation> failed: <error>"
            **metadata: Additional context-specific metadata

        Returns:
            ErrorInfo: The record passed to the callbacks
        """
        error_info = ErrorInfo(
            error=error,
            context=context,
            severity=severity,
            operation=operation,
            metadata=metadata,
            timestamp=datetime.now(),
        )

        self._error_count[context] += 1

        self.logger.log(
            _LOG_LEVELS[severity], f"Error in {context.value} ({operation}): {error}"
        )

        if self.journal is not None:
            kind = (
                JournalKind.WARNING
                if severity in (ErrorSeverity.LOW, ErrorSeverity.MEDIUM)
                else JournalKind.ERROR
            )
            self.journal.add(message or f"{operation} failed: {error}", kind)

        await self._execute_handlers(self._handlers[context], error_info)
        await self._execute_handlers(self._global_handlers, error_info)
        return error_info

    async def _execute_handlers(
        self, handlers: List[Callable], error_info: ErrorInfo
    ) -> None:
        """Execute error handlers with proper error isolation."""
        for handler in list(handlers):
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(error_info)
                else:
                    handler(error_info)
            except Exception as handler_error:
                self.logger.error(f"Error in error handler: {handler_error}")

    def get_error_stats(self) -> Dict[str, Any]:
        """Get simple error statistics."""
        return {
            "error_counts": {
                ctx.value: count for ctx, count in self._error_count.items()
            },
            "total_errors": sum(self._error_count.values()),
            "global_handlers": len(self._global_handlers),
        }

    def reset_stats(self) -> None:
        """Reset error statistics."""
        self._error_count = {context: 0 for context in ErrorContext}
