"""
SharedKey request signing for the Table service.

Table requests use a reduced string-to-sign compared to the other storage
services:

    VERB\\n
    Content-MD5\\n
    Content-Type\\n
    Date\\n
    CanonicalizedResource

Date is the x-ms-date header. CanonicalizedResource is /account/path, plus
"?comp=<value>" when the request carries a comp query parameter.

Reference: https://docs.microsoft.com/en-us/rest/api/storageservices/authorize-with-shared-key
"""

import base64
import binascii
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Dict
from urllib.parse import parse_qs, urlparse

from zuretable.auth.exceptions import InvalidAccountKeyError
from zuretable.core.transport import HttpRequest

logger = logging.getLogger(__name__)


@dataclass
class SharedKeyCredentials:
    """Credentials for SharedKey authentication."""

    account_name: str
    account_key: str  # Base64-encoded


class SharedKeySigner:
    """Adds a SharedKey Authorization header to table requests."""

    def __init__(self, credentials: SharedKeyCredentials):
        try:
            self._key_bytes = base64.b64decode(credentials.account_key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidAccountKeyError() from e
        self.account_name = credentials.account_name

    def sign(self, request: HttpRequest) -> None:
        """
        Sign request in place.

        Args:
            request: Request whose headers already include x-ms-date
        """
        headers_lower = {k.lower(): v for k, v in request.headers.items()}
        string_to_sign = build_string_to_sign(request.method, request.url, headers_lower, self.account_name)
        signature = compute_signature(string_to_sign, self._key_bytes)
        request.headers["Authorization"] = f"SharedKey {self.account_name}:{signature}"
        logger.debug(f"Signed {request.method} request for account {self.account_name}")


def build_string_to_sign(
    method: str,
    url: str,
    headers: Dict[str, str],
    account_name: str
) -> str:
    """
    Build the table service string-to-sign.

    Args:
        method: HTTP method
        url: Full request URL
        headers: Request headers (lowercase keys)
        account_name: Storage account name

    Returns:
        String to sign
    """
    parts = [
        method.upper(),
        headers.get("content-md5", ""),
        headers.get("content-type", ""),
        headers.get("x-ms-date", headers.get("date", "")),
        _build_canonicalized_resource(url, account_name),
    ]
    return "\n".join(parts)


def _build_canonicalized_resource(url: str, account_name: str) -> str:
    """
    Build CanonicalizedResource string.

    Only the comp query parameter participates for table requests.

    Args:
        url: Full request URL
        account_name: Storage account name

    Returns:
        Canonicalized resource string
    """
    parsed = urlparse(url)
    resource = f"/{account_name}{parsed.path}"

    if parsed.query:
        comp = parse_qs(parsed.query).get("comp")
        if comp:
            resource += f"?comp={comp[0]}"

    return resource


def compute_signature(string_to_sign: str, key_bytes: bytes) -> str:
    """
    Compute HMAC-SHA256 signature.

    Signature = Base64(HMAC-SHA256(UTF8(StringToSign), AccountKey))

    Args:
        string_to_sign: String to sign
        key_bytes: Decoded account key

    Returns:
        Base64-encoded signature
    """
    signature_bytes = hmac.new(
        key_bytes,
        string_to_sign.encode("utf-8"),
        hashlib.sha256
    ).digest()
    return base64.b64encode(signature_bytes).decode("utf-8")
