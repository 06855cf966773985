"""
Custom Exception Classes for the CoverFit API
"""
import asyncio
import functools
import inspect
import time
from random import uniform
from typing import Dict, Any

from fastapi import HTTPException


class CoverFitBaseException(Exception):
    """Base exception for the CoverFit API"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class ValidationError(CoverFitBaseException):
    """Raised when a required input is missing or malformed"""

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if field:
            details['field'] = field
        if value is not None:
            details['invalid_value'] = str(value)
        super().__init__(message, error_code="VALIDATION_ERROR", details=details, **kwargs)


class PersistenceError(CoverFitBaseException):
    """Raised when the saved-state store fails"""

    def __init__(self, message: str, operation: str = None, session_id: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if operation:
            details['operation'] = operation
        if session_id:
            details['session_id'] = session_id
        super().__init__(message, error_code="PERSISTENCE_ERROR", details=details, **kwargs)


class ModelError(CoverFitBaseException):
    """Raised when a language model call fails or returns an unusable response"""

    def __init__(self, message: str, model_name: str = None, operation: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if model_name:
            details['model_name'] = model_name
        if operation:
            details['operation'] = operation
        super().__init__(message, error_code="MODEL_ERROR", details=details, **kwargs)


class ExtractionError(CoverFitBaseException):
    """Raised when text cannot be extracted from an uploaded document"""

    def __init__(self, message: str, filename: str = None, document_id: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if filename:
            details['filename'] = filename
        if document_id:
            details['document_id'] = document_id
        super().__init__(message, error_code="EXTRACTION_ERROR", details=details, **kwargs)


class NotFoundError(CoverFitBaseException):
    """Raised when a batch, document or saved session does not exist"""

    def __init__(self, message: str, resource: str = None, resource_id: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if resource:
            details['resource'] = resource
        if resource_id:
            details['resource_id'] = resource_id
        super().__init__(message, error_code="NOT_FOUND", details=details, **kwargs)


class ExternalServiceError(CoverFitBaseException):
    """Raised when external service calls fail"""

    def __init__(self, message: str, service_name: str = None, status_code: int = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if service_name:
            details['service_name'] = service_name
        if status_code:
            details['status_code'] = status_code
        super().__init__(message, error_code="EXTERNAL_SERVICE_ERROR", details=details, **kwargs)


class BusinessLogicError(CoverFitBaseException):
    """Raised when an operation is not allowed in the current state"""

    def __init__(self, message: str, rule: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if rule:
            details['business_rule'] = rule
        super().__init__(message, error_code="BUSINESS_LOGIC_ERROR", details=details, **kwargs)


def map_to_http_exception(exc: CoverFitBaseException) -> HTTPException:
    """Map custom exceptions to HTTP exceptions"""

    status_code_mapping = {
        ValidationError: 400,
        BusinessLogicError: 400,
        NotFoundError: 404,
        ExtractionError: 422,
        PersistenceError: 500,
        ModelError: 500,
        ExternalServiceError: 502,
    }

    status_code = status_code_mapping.get(type(exc), 500)

    detail = {
        "error": exc.to_dict(),
        "message": exc.message
    }

    return HTTPException(status_code=status_code, detail=detail)


class ExceptionContext:
    """Context manager for handling exceptions with additional context"""

    def __init__(self, operation: str, logger=None, **context):
        self.operation = operation
        self.logger = logger
        self.context = context

    def __enter__(self):
        if self.logger:
            self.logger.debug(f"Starting operation: {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            if self.logger:
                self.logger.debug(f"Operation completed: {self.operation}", extra=self.context)
            return False

        if self.logger:
            self.logger.error(
                f"Operation failed: {self.operation} - {exc_val}",
                extra={**self.context, "exception_type": exc_type.__name__}
            )

        # Custom exceptions and HTTP exceptions pass through untouched
        if isinstance(exc_val, (CoverFitBaseException, HTTPException)):
            return False

        if isinstance(exc_val, (KeyError, ValueError, TypeError)):
            raise ValidationError(
                f"Validation error in {self.operation}: {str(exc_val)}",
                details=dict(self.context),
                cause=exc_val
            ) from exc_val

        raise ExternalServiceError(
            f"Unexpected failure in {self.operation}: {str(exc_val)}",
            details=dict(self.context),
            cause=exc_val
        ) from exc_val


def retry_with_logging(
    max_attempts: int = 3,
    backoff_factor: float = 1.0,
    exceptions: tuple = (Exception,),
    logger=None
):
    """Decorator to retry operations with exponential backoff and logging"""

    def decorator(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if logger:
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_attempts} failed for {func.__name__}: {str(e)}"
                        )
                    if attempt == max_attempts - 1:
                        if logger:
                            logger.error(f"All {max_attempts} attempts failed for {func.__name__}")
                        raise
                    await asyncio.sleep(backoff_factor * (2 ** attempt) + uniform(0, backoff_factor))

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if logger:
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_attempts} failed for {func.__name__}: {str(e)}"
                        )
                    if attempt == max_attempts - 1:
                        if logger:
                            logger.error(f"All {max_attempts} attempts failed for {func.__name__}")
                        raise
                    time.sleep(backoff_factor * (2 ** attempt) + uniform(0, backoff_factor))

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
