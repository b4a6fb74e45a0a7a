"""
Error taxonomy for the analysis proxy.

Every error that can cross the HTTP boundary derives from ProxyError and
carries a client-safe message. Upstream bodies and headers never end up in
these messages; free-form details are truncated first.
"""
from typing import Optional


MAX_DETAIL_LENGTH = 200
GENERIC_INVALID_REQUEST = "Invalid request"


def truncate_detail(detail, limit: int = MAX_DETAIL_LENGTH) -> Optional[str]:
    """Convert a detail value to a single-line string of at most `limit` characters."""
    if detail is None:
        return None
    if isinstance(detail, bytes):
        detail = detail.decode("utf-8", errors="replace")
    text = " ".join(str(detail).split())
    return text[:limit]


class ProxyError(Exception):
    """Base class for errors rendered as JSON error payloads."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details=None):
        self.message = message or self.default_message
        self.details = truncate_detail(details)
        super().__init__(self.message)

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ProxyError):
    """Malformed identifier, index, URL or body. Never reaches upstream."""

    status_code = 400
    default_message = GENERIC_INVALID_REQUEST


class SecurityRejection(ProxyError):
    """Path traversal, SSRF target, redirect or suspicious storage path.

    The payload is always the generic message so probing clients learn
    nothing about which check fired.
    """

    status_code = 400
    default_message = GENERIC_INVALID_REQUEST

    def __init__(self, reason: str = "rejected"):
        # reason is for server logs only
        self.reason = reason
        super().__init__(GENERIC_INVALID_REQUEST)

    def to_payload(self) -> dict:
        return {"error": GENERIC_INVALID_REQUEST}


class NotFoundError(ProxyError):
    """Upstream reports no such session, face or image."""

    status_code = 404
    default_message = "Not found"


class UpstreamError(ProxyError):
    """Upstream reachable but failed, or returned a malformed payload."""

    status_code = 500
    default_message = "Upstream service error"


class UploadError(UpstreamError):
    """Session creation did not yield a session identifier."""

    default_message = "Error uploading image"


class PollingTimeoutError(Exception):
    """Polling attempt budget exhausted while the session was still in flight."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__("Processing timeout exceeded")


class ApiClientError(Exception):
    """A call from ProoflyClient to the proxy surface failed."""

    def __init__(self, message: str, status: Optional[int] = None, endpoint: Optional[str] = None):
        self.status = status
        self.endpoint = endpoint
        super().__init__(message)
