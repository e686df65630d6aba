"""Domain errors and the HTTP status each one maps to."""


class FreeSeekError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class AuthError(FreeSeekError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidCredentials(AuthError):
    default_message = "Invalid credentials"


class InvalidRequest(FreeSeekError):
    status_code = 400
    default_message = "Invalid request"


class DuplicateUser(FreeSeekError):
    status_code = 400
    default_message = "User already exists"


class ChatNotFound(FreeSeekError):
    """Raised for missing chats and for chats owned by someone else."""

    status_code = 404
    default_message = "Chat not found"


class UpstreamError(FreeSeekError):
    status_code = 502
    default_message = "Completion service failed"


class UpstreamTimeout(UpstreamError):
    status_code = 504
    default_message = "Completion service timed out"


class PersistenceError(FreeSeekError):
    default_message = "Could not save changes"
