"""
Authentication exceptions for zuretable.
"""


class AuthenticationError(Exception):
    """Base exception for authentication errors."""

    def __init__(self, message: str, error_code: str = "AuthenticationFailed"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class InvalidAccountKeyError(AuthenticationError):
    """Raised when the account key is not valid Base64."""

    def __init__(self, message: str = "Account key must be a Base64-encoded string"):
        super().__init__(message, "InvalidAccountKey")
