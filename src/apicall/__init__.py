"""
apicall - fluent request builder and response assertions for HTTP API tests
"""

from apicall.client import ApiCall, BearerAuth
from apicall.exceptions import (
    ApiCallError,
    ExpectationError,
    InvalidMethodError,
    RequestAbortedError,
    RequestAlreadySentError,
    RequestTimeoutError,
    ResponseNotAvailableError,
    ResponseParseError,
    TransportError,
    UnsuccessfulResponseError,
)
from apicall.models import ApiMethod, ApiResponse, RequestDescriptor
from apicall.plugins import RequestLogger

__version__ = "1.0.0"

__all__ = [
    "ApiCall",
    "ApiCallError",
    "ApiMethod",
    "ApiResponse",
    "BearerAuth",
    "ExpectationError",
    "InvalidMethodError",
    "RequestAbortedError",
    "RequestAlreadySentError",
    "RequestDescriptor",
    "RequestLogger",
    "RequestTimeoutError",
    "ResponseNotAvailableError",
    "ResponseParseError",
    "TransportError",
    "UnsuccessfulResponseError",
]
