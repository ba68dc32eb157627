"""Error taxonomy and error-handling helpers for improvement cycles."""
from typing import Callable, TypeVar, Optional, Dict, Any
from functools import wraps
from enum import Enum

T = TypeVar('T')


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EvalErrorCode(Enum):
    """Error codes for improvement cycle operations."""
    TEMPLATE_COMPILE_ERROR = "TEMPLATE_COMPILE_ERROR"
    INVALID_CONFIG = "INVALID_CONFIG"
    PROMPT_INVALID_FORMAT = "PROMPT_INVALID_FORMAT"
    SUGGESTION_APPLY_ERROR = "SUGGESTION_APPLY_ERROR"
    SCHEMA_VALIDATION_ERROR = "SCHEMA_VALIDATION_ERROR"
    FILE_READ_ERROR = "FILE_READ_ERROR"
    FILE_WRITE_ERROR = "FILE_WRITE_ERROR"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class EvalError(Exception):
    """
    Base error for improvement cycle operations.

    Carries a machine-readable code and optional context so callers can
    branch on the failure kind without parsing messages.
    """

    default_code: EvalErrorCode = EvalErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[EvalErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    @classmethod
    def wrap(
        cls,
        error: BaseException,
        code: Optional[EvalErrorCode] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> 'EvalError':
        """Wrap an arbitrary exception, passing EvalErrors through unchanged."""
        if isinstance(error, EvalError):
            return error
        return cls(str(error), code=code, context=context, cause=error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None
        }


class InvalidConfigError(EvalError):
    """Bad arguments, missing conditions, bad rollback target, unsaveable session."""
    default_code = EvalErrorCode.INVALID_CONFIG


class ConcurrentModificationError(EvalError):
    """Session mutated while another mutation was in flight."""
    default_code = EvalErrorCode.CONCURRENT_MODIFICATION


class SchemaValidationError(EvalError):
    """Malformed or schema-incompatible history file."""
    default_code = EvalErrorCode.SCHEMA_VALIDATION_ERROR


class FileReadError(EvalError):
    default_code = EvalErrorCode.FILE_READ_ERROR


class FileWriteError(EvalError):
    default_code = EvalErrorCode.FILE_WRITE_ERROR


class PromptInvalidFormatError(EvalError):
    """Prompt cannot be serialized, or a deserialized prompt fails shape checks."""
    default_code = EvalErrorCode.PROMPT_INVALID_FORMAT


class TemplateCompileError(EvalError):
    default_code = EvalErrorCode.TEMPLATE_COMPILE_ERROR


class SuggestionApplyError(EvalError):
    """Invalid semver on bump, or user_prompt suggestion on a template-less prompt."""
    default_code = EvalErrorCode.SUGGESTION_APPLY_ERROR


def handle_errors(
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    log_error: bool = True,
    reraise: bool = True
):
    """
    Decorator for error handling with logging.

    Args:
        severity: Error severity level
        log_error: Whether to log the error
        reraise: Whether to re-raise the exception
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log_error:
                    from utils.logging_utils import get_logger
                    logger = get_logger()
                    details = e.to_dict() if isinstance(e, EvalError) else {}
                    logger.error(
                        f"Error in {func.__name__}: {str(e)}",
                        severity=severity.value,
                        function=func.__name__,
                        exception_type=type(e).__name__,
                        error_code=details.get("code")
                    )

                if reraise:
                    raise
                return None

        return wrapper
    return decorator
