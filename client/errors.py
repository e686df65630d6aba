class ChatClientError(Exception):
    """A chat request failed; `status_code` is set when the server answered."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(ChatClientError):
    """Missing, invalid or expired credentials; the user has to log in again."""
