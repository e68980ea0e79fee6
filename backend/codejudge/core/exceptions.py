"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Validation Errors
class ValidationError(BaseAPIException):
    """Request rejected before any execution"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, details=details)


class SecurityPolicyError(ValidationError):
    """Code or payload violates the security policy.

    The message carries only a reason category. The matched keyword or
    pattern is kept in ``matched`` for server-side logging.
    """
    def __init__(self, category: str, matched: Optional[str] = None):
        super().__init__(category, details={"reason": "security_policy"})
        self.matched = matched


class UnsupportedTypeError(ValidationError):
    """Type tag has no marshaling branch"""
    def __init__(self, type_tag: Any):
        super().__init__(f"Unsupported type: {type_tag}", details={"type": str(type_tag)})
        self.type_tag = type_tag


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


# System Errors
class InfrastructureError(BaseAPIException):
    """Sandbox could not be provisioned"""
    def __init__(self, message: str = "Execution environment unavailable"):
        super().__init__(message, status_code=503)


class RemoteExecutionError(BaseAPIException):
    """Remote batch execution service failed"""
    def __init__(self, message: str = "Code execution engine is currently unavailable"):
        super().__init__(message, status_code=502)


# Queue Errors
class QueueFullError(BaseAPIException):
    """Task queue backlog is at capacity"""
    def __init__(self, message: str = "Queue is full"):
        super().__init__(message, status_code=503)


class TaskCancelledError(BaseAPIException):
    """Queued task was cancelled before it started"""
    def __init__(self, message: str = "Task cancelled"):
        super().__init__(message, status_code=409)


class TaskTimeoutError(BaseAPIException):
    """Queued task waited longer than the allowed age"""
    def __init__(self, message: str = "Task timeout"):
        super().__init__(message, status_code=503)


class QueueShutdownError(BaseAPIException):
    """Queue shut down before the task could run"""
    def __init__(self, message: str = "Shutdown timeout"):
        super().__init__(message, status_code=503)


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)
