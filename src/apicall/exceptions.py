"""
Exception hierarchy for the ApiCall facade
"""

from typing import Any, Optional


class ApiCallError(Exception):
    """Base class for all errors raised by ApiCall"""


class InvalidMethodError(ApiCallError, ValueError):
    """Raised when an ApiCall is constructed with an unsupported HTTP method"""

    def __init__(self, method: Any):
        self.method = method
        super().__init__(f"Invalid HTTP method provided: {method!r}")


class ResponseNotAvailableError(ApiCallError):
    """Raised when a response accessor is used before a terminal call resolved"""

    def __init__(self, message: str = "Response is undefined. Make sure to call the API call method first."):
        super().__init__(message)


class RequestAlreadySentError(ApiCallError):
    """Raised when a terminal operation is invoked twice on the same ApiCall"""

    def __init__(self, message: str = "Request has already been dispatched; create a new ApiCall"):
        super().__init__(message)


class ExpectationError(ApiCallError, AssertionError):
    """An expectation registered on the ApiCall did not match the response"""

    def __init__(self, message: str, expected: Any = None, actual: Any = None):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class UnsuccessfulResponseError(ApiCallError):
    """The success condition rejected the response"""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"Response with status {status_code} rejected by success condition")


class ResponseParseError(ApiCallError):
    """The response body could not be decoded for its content type"""


class TransportError(ApiCallError):
    """Network, TLS or protocol failure while dispatching the request"""


class RequestTimeoutError(TransportError):
    """The request exceeded its deadline or response timeout"""


class RequestAbortedError(TransportError):
    """The request was aborted before a response was received"""

    def __init__(self, message: str = "Request has been aborted"):
        super().__init__(message)
