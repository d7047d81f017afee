"""
Domain errors raised by the stores and services.

Every error carries a human-readable ``message`` (sent back to the client in
the ``{success: false, message}`` body) and a short ``kind`` used as a
metrics label.
"""


class ChatError(Exception):
    """Base class for failures reported to the client."""

    kind = "error"
    default_message = "Server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingField(ChatError):
    kind = "missing_field"
    default_message = "All fields are required"


class DuplicateUsername(ChatError):
    kind = "duplicate_username"
    default_message = "Username already exists"


class DuplicateEmail(ChatError):
    kind = "duplicate_email"
    default_message = "Email already exists"


class UserNotFound(ChatError):
    kind = "user_not_found"
    default_message = "User not found"


class IncorrectPassword(ChatError):
    kind = "incorrect_password"
    default_message = "Incorrect password"


class InvalidUpload(ChatError):
    kind = "invalid_upload"
    default_message = "Only image files are allowed!"


def require_fields(message: str = None, **fields) -> None:
    """
    Raise MissingField if any of the given values is empty.

    Strings made only of whitespace count as empty.
    """
    for value in fields.values():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingField(message)
