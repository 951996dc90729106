"""
zuretable authentication.

SharedKey signing for table requests.
"""

from zuretable.auth.exceptions import AuthenticationError, InvalidAccountKeyError
from zuretable.auth.sharedkey import (
    SharedKeyCredentials,
    SharedKeySigner,
    build_string_to_sign,
    compute_signature,
)

__all__ = [
    # Exceptions
    "AuthenticationError",
    "InvalidAccountKeyError",
    # SharedKey
    "SharedKeyCredentials",
    "SharedKeySigner",
    "build_string_to_sign",
    "compute_signature",
]
