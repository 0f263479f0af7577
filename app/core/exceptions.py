from typing import Optional, Any

class NearMeetError(Exception):
    """
    Base exception for NearMeet application.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

class ResourceNotFoundError(NearMeetError):
    """
    Raised when a requested resource is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)

class AuthenticationError(NearMeetError):
    """
    Raised when the webhook secret does not match.
    """
    def __init__(self, message: str = "Authentication failed", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)

class ValidationError(NearMeetError):
    """
    Raised when input validation fails.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)

class ExternalServiceError(NearMeetError):
    """
    Raised when an external service (e.g., Telegram, MongoDB) fails.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", status_code=502, details=details)

class InvalidStageTransitionError(NearMeetError):
    """
    Raised when a stage change would break the CHATTING <-> binding invariant.
    """
    def __init__(self, message: str = "Invalid stage transition", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_STAGE_TRANSITION", status_code=409, details=details)

class ChatAlreadyActiveError(NearMeetError):
    """
    Raised when a chat session is started for a chat that is already bound.
    """
    def __init__(self, message: str = "Chat session already active", details: Optional[Any] = None):
        super().__init__(message, code="CHAT_ALREADY_ACTIVE", status_code=409, details=details)

class MissingPrerequisiteError(NearMeetError):
    """
    Raised when a meeting request is dispatched without its required fields.
    """
    def __init__(self, message: str = "Missing prerequisite", details: Optional[Any] = None):
        super().__init__(message, code="MISSING_PREREQUISITE", status_code=422, details=details)

class MeetingDomainError(NearMeetError):
    """
    Raised by the meeting collaborator when a request cannot be persisted or updated.
    """
    def __init__(self, message: str = "Meeting request operation failed", details: Optional[Any] = None):
        super().__init__(message, code="MEETING_DOMAIN_ERROR", status_code=500, details=details)
