"""
Table Client Exception Hierarchy

Error types raised by single-entity table operations. Local failures
(missing keys, bad arguments, unencodable entities) are raised before any
request is sent; remote failures are translated into TableServiceError.
"""

import json
from typing import Any, Dict, Optional
from xml.etree import ElementTree as ET


class StorageError(Exception):
    """
    Base exception for all table client errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., 'EntityAlreadyExists')
        details: Additional context
    """

    error_code: str = "StorageError"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# ========== Local Errors ==========

class PreconditionError(StorageError, ValueError):
    """Raised when an operation is missing a required key, tag, or argument."""
    error_code = "PreconditionViolation"

    def __init__(self, argument: str, message: Optional[str] = None):
        message = message or f"The argument '{argument}' must not be null or empty"
        super().__init__(message, details={"argument": argument})
        self.argument = argument


class SerializationError(StorageError):
    """Raised when an entity cannot be encoded into the requested payload format."""
    error_code = "SerializationFailed"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        details = {"cause": type(cause).__name__} if cause else {}
        super().__init__(message, details=details)
        self.cause = cause


class InvalidOperationError(StorageError, ValueError):
    """Raised for an operation kind that has no request builder."""
    error_code = "UnknownTableOperation"

    def __init__(self, kind: Any):
        super().__init__(f"Unknown table operation: {kind!r}", details={"kind": repr(kind)})


# ========== Remote Errors ==========

class TableServiceError(StorageError):
    """
    Structured error for any unexpected service response.

    Attributes:
        status_code: HTTP status code, or None when no response was received
        request_id: Value of x-ms-request-id when the service sent one
        is_fatal: True for server or transport faults, which the execution
            engine may retry; False for business outcomes such as a conflict
            or a missing row on a conditional write, which are never retried
        http_status_message: Reason phrase of the response
    """
    error_code = "TableServiceError"

    def __init__(
        self,
        message: str,
        status_code: Optional[int],
        is_fatal: bool,
        error_code: Optional[str] = None,
        request_id: Optional[str] = None,
        http_status_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code=error_code, details=details)
        self.status_code = status_code
        self.is_fatal = is_fatal
        self.request_id = request_id
        self.http_status_message = http_status_message

    @property
    def server_message(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["error"].update({
            "status_code": self.status_code,
            "request_id": self.request_id,
            "is_fatal": self.is_fatal,
        })
        return data

    def __str__(self) -> str:
        return f"{self.status_code} {self.error_code}: {self.message}"


def parse_error_body(body: bytes) -> Dict[str, Optional[str]]:
    """
    Extract code and message from a service error payload.

    The table service answers JSON requests with an ``odata.error`` object;
    some front ends answer with the storage XML ``<Error>`` document instead.

    Args:
        body: Raw error response body

    Returns:
        Dict with "code" and "message" keys (values may be None)
    """
    result: Dict[str, Optional[str]] = {"code": None, "message": None}
    if not body:
        return result

    text = body.decode("utf-8", errors="replace").strip()
    if text.startswith("{"):
        try:
            payload = json.loads(text)
        except ValueError:
            return result
        error = payload.get("odata.error") or payload.get("error") or {}
        if not isinstance(error, dict):
            # Proxies send e.g. {"error": "Bad Gateway"}.
            result["message"] = str(error)
            return result
        result["code"] = error.get("code")
        message = error.get("message")
        if isinstance(message, dict):
            message = message.get("value")
        result["message"] = message
    elif text.startswith("<"):
        try:
            root = ET.fromstring(body.strip())
        except (ET.ParseError, ValueError):
            return result
        for child in root.iter():
            tag = child.tag.rsplit("}", 1)[-1].lower()
            if tag == "code" and result["code"] is None:
                result["code"] = child.text
            elif tag == "message" and result["message"] is None:
                result["message"] = child.text
    return result


def generate_table_service_error(
    is_fatal: bool,
    status_code: Optional[int],
    headers: Dict[str, str],
    body: bytes,
    reason: Optional[str] = None
) -> TableServiceError:
    """
    Translate an unexpected response into a TableServiceError.

    Args:
        is_fatal: Classification of the failure (see TableServiceError)
        status_code: HTTP status code
        headers: Response headers (case-insensitive mapping preferred)
        body: Response body, read only on this error path
        reason: HTTP reason phrase

    Returns:
        TableServiceError ready to raise
    """
    parsed = parse_error_body(body)
    request_id = headers.get("x-ms-request-id")
    message = parsed["message"] or reason or f"Unexpected status code {status_code}"
    return TableServiceError(
        message=message,
        status_code=status_code,
        is_fatal=is_fatal,
        error_code=parsed["code"] or "TableServiceError",
        request_id=request_id,
        http_status_message=reason,
    )
