"""
Custom Exceptions for CapstoneFlow
==================================

Every rule the workflow engine enforces fails with one of these. They are
surfaced to the caller verbatim and never retried by the engine.

Usage:
    from app.core.exceptions import ProjectNotFoundError, UnauthorizedError

    if not project:
        raise ProjectNotFoundError(project_id)

    try:
        await allocation.assign_supervisor(ctx, student_id, supervisor_id)
    except CapacityExceededError as e:
        logger.warning(f"Allocation rejected: {e}")
        raise
"""

from typing import Optional, Any, Dict


class CapstoneFlowError(Exception):
    """Base exception for all CapstoneFlow errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# Authentication & Authorization Errors

class AuthenticationError(CapstoneFlowError):
    """Credentials missing, malformed or pointing at no active user"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class UnauthorizedError(CapstoneFlowError):
    """Role or ownership check failed"""

    status_code = 403

    def __init__(self, message: str = "Not authorized", action: Optional[str] = None):
        details = {"action": action} if action else {}
        super().__init__(message, code="UNAUTHORIZED", details=details)


# Resource Errors (404-type)

class ResourceNotFoundError(CapstoneFlowError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class ProjectNotFoundError(ResourceNotFoundError):
    """Project not found"""

    def __init__(self, project_id: str):
        super().__init__("Project", project_id)


class TaskNotFoundError(ResourceNotFoundError):
    """Task (phase) not found"""

    def __init__(self, task_id: str):
        super().__init__("Task", task_id)


class UserNotFoundError(ResourceNotFoundError):
    """User not found"""

    def __init__(self, user_id: str):
        super().__init__("User", user_id)


class NotificationNotFoundError(ResourceNotFoundError):
    """Notification not found (or not owned by the caller)"""

    def __init__(self, notification_id: str):
        super().__init__("Notification", notification_id)


# Validation Errors (422-type)

class ValidationError(CapstoneFlowError):
    """Missing or malformed required field"""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


# Workflow Errors (409-type)

class InvalidTransitionError(CapstoneFlowError):
    """State machine precondition violated"""

    status_code = 409

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        requested: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if current is not None:
            details["current"] = current
        if requested is not None:
            details["requested"] = requested
        if reason:
            details["reason"] = reason
        super().__init__(message, code="INVALID_TRANSITION", details=details)


class CapacityExceededError(CapstoneFlowError):
    """Supervisor is already at capacity"""

    status_code = 409

    def __init__(self, supervisor_id: str, capacity: int, current_load: int):
        super().__init__(
            f"Supervisor is at full capacity ({current_load}/{capacity})",
            code="CAPACITY_EXCEEDED",
            details={
                "supervisor_id": supervisor_id,
                "capacity": capacity,
                "current_load": current_load,
            }
        )


class MissingAssignmentError(CapstoneFlowError):
    """Task creation attempted on a project with nobody to assign it to"""

    status_code = 409

    def __init__(self, project_id: str, project_type: str):
        expected = "project head" if project_type == "Group" else "assigned student"
        super().__init__(
            f"Project has no {expected} to receive the phase",
            code="MISSING_ASSIGNMENT",
            details={"project_id": project_id, "project_type": project_type}
        )


class ConcurrentModificationError(CapstoneFlowError):
    """Another request changed the same entity first"""

    status_code = 409

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} '{resource_id}' was modified by another request",
            code="CONCURRENT_MODIFICATION",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


# Helper function for API responses

def error_response(error: CapstoneFlowError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
