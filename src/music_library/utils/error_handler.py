"""
User-Friendly Error Handling

Converts exceptions into structured error payloads that callers can render
directly. Technical detail goes to the log only, unless verbose mode is on.
"""

import logging
import traceback
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.blob_store import StorageError
from ..core.ingestion import IngestionError, IngestionFailedError
from ..core.song_database import RecordStoreError


class ErrorCategory(Enum):
    """Categories of errors"""
    USER_INPUT = "user_input"
    STORAGE = "storage"
    CONFIGURATION = "configuration"
    NETWORK = "network"
    FILE_ACCESS = "file_access"
    SYSTEM = "system"


class UserFriendlyError:
    """User-friendly error representation"""

    def __init__(self,
                 category: ErrorCategory,
                 code: str,
                 message: str,
                 suggestions: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None,
                 technical_details: Optional[str] = None):
        self.category = category
        self.code = code
        self.message = message
        self.suggestions = suggestions or []
        self.details = details
        self.technical_details = technical_details

    def to_dict(self) -> Dict[str, Any]:
        """``{"error": {"code", "message"[, "details"]}}``"""
        error: Dict[str, Any] = {'code': self.code, 'message': self.message}
        if self.details:
            error['details'] = self.details
        return {'error': error}


class ErrorHandler:
    """
    Converts exceptions into user-friendly errors.

    Ingestion errors already carry a code and a safe message and are passed
    through; everything else is classified against the templates below.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)
        self.error_templates = self._load_error_templates()

    def _load_error_templates(self) -> Dict[str, Dict[str, Any]]:
        """Load error message templates"""
        return {
            "FILE_NOT_FOUND": {
                "category": ErrorCategory.FILE_ACCESS,
                "message": "The file '{file_path}' could not be found.",
                "generic": "The file could not be found.",
                "suggestions": [
                    "Check that the path is correct",
                ]
            },
            "PERMISSION_DENIED": {
                "category": ErrorCategory.FILE_ACCESS,
                "message": "No permission to access '{file_path}'.",
                "generic": "No permission to access the file.",
                "suggestions": [
                    "Check the file permissions",
                ]
            },
            "STORAGE_UNAVAILABLE": {
                "category": ErrorCategory.STORAGE,
                "message": "The library storage is currently unavailable.",
                "suggestions": [
                    "Check that the storage directory and database are writable",
                    "Make sure enough disk space is available",
                ]
            },
            "CONFIG_INVALID": {
                "category": ErrorCategory.CONFIGURATION,
                "message": "The configuration contains invalid values: {issues}",
                "generic": "The configuration contains invalid values.",
                "suggestions": [
                    "Review the configuration file",
                ]
            },
            "NETWORK_ERROR": {
                "category": ErrorCategory.NETWORK,
                "message": "A network service could not be reached.",
                "suggestions": [
                    "Check your internet connection",
                    "Try again later",
                ]
            },
            "INTERNAL_ERROR": {
                "category": ErrorCategory.SYSTEM,
                "message": "An unexpected error occurred.",
                "suggestions": [
                    "Run again with --verbose and check the log file",
                ]
            },
        }

    def handle_exception(self, exception: Exception, context: Optional[Dict[str, Any]] = None) -> UserFriendlyError:
        """
        Convert exception to user-friendly error.

        Args:
            exception: The original exception
            context: Values for the message template

        Returns:
            UserFriendlyError object
        """
        context = context or {}

        technical_details = None
        if self.verbose:
            technical_details = (f"{type(exception).__name__}: {exception}\n"
                                 f"{''.join(traceback.format_exception(type(exception), exception, exception.__traceback__))}")

        if isinstance(exception, IngestionError):
            category = ErrorCategory.STORAGE if isinstance(exception, IngestionFailedError) else ErrorCategory.USER_INPUT
            return UserFriendlyError(
                category=category,
                code=exception.code,
                message=exception.message,
                details=exception.details,
                technical_details=technical_details,
            )

        code = self._classify_exception(exception, context)
        template = self.error_templates[code]

        try:
            message = template["message"].format(**context)
        except (KeyError, IndexError, ValueError):
            message = template.get("generic", template["message"])

        return UserFriendlyError(
            category=template["category"],
            code=code,
            message=message,
            suggestions=list(template["suggestions"]),
            technical_details=technical_details,
        )

    def _classify_exception(self, exception: Exception, context: Dict[str, Any]) -> str:
        """Classify exception to determine error template"""
        if isinstance(exception, (StorageError, RecordStoreError)):
            return "STORAGE_UNAVAILABLE"
        elif isinstance(exception, FileNotFoundError):
            return "FILE_NOT_FOUND"
        elif isinstance(exception, PermissionError):
            return "PERMISSION_DENIED"
        elif isinstance(exception, (ConnectionError, TimeoutError)):
            return "NETWORK_ERROR"
        elif isinstance(exception, ValueError) and context.get("config_validation"):
            return "CONFIG_INVALID"
        return "INTERNAL_ERROR"

    def format_error_message(self, error: UserFriendlyError, show_suggestions: bool = True) -> str:
        """Format error for terminal display"""
        lines = [f"Error [{error.code}]: {error.message}"]

        if show_suggestions and error.suggestions:
            lines.append("Suggestions:")
            for suggestion in error.suggestions:
                lines.append(f"  - {suggestion}")

        if self.verbose and error.technical_details:
            lines.append("Technical details:")
            for line in error.technical_details.split('\n'):
                if line.strip():
                    lines.append(f"  {line}")

        return '\n'.join(lines)

    def log_error(self, error: UserFriendlyError, original_exception: Optional[Exception] = None):
        """Log error with appropriate level"""
        if error.category in (ErrorCategory.USER_INPUT, ErrorCategory.CONFIGURATION):
            self.logger.warning(f"User error: {error.code} - {error.message}")
        else:
            self.logger.error(f"System error: {error.code} - {error.message}")

        if original_exception is not None and error.technical_details:
            self.logger.debug(f"Technical details: {error.technical_details}")


_error_handler: Optional[ErrorHandler] = None


def get_error_handler(verbose: bool = False) -> ErrorHandler:
    """Get global error handler instance"""
    global _error_handler
    if _error_handler is None or _error_handler.verbose != verbose:
        _error_handler = ErrorHandler(verbose=verbose)
    return _error_handler
