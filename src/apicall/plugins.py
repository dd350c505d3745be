"""
Plugins for ApiCall

A plugin is any callable taking the ApiCall instance; it is applied once,
when passed to ApiCall.set_plugin, and only affects that request.
"""

import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from apicall.models import ApiResponse, RequestDescriptor

if TYPE_CHECKING:
    from apicall.client import ApiCall

logger = logging.getLogger(__name__)


class RequestLogger:
    """Log the outgoing request and its outcome"""

    def __init__(self, outgoing: bool = True, timestamp: bool = True, log: Optional[logging.Logger] = None):
        self.outgoing = outgoing
        self.timestamp = timestamp
        self.log = log or logger
        self._started: Optional[float] = None

    def __call__(self, call: "ApiCall") -> None:
        call.set_on_request_handler(self.on_request)
        call.set_on_response_handler(self.on_response)
        call.set_on_error_handler(self.on_error)

    def _prefix(self) -> str:
        if not self.timestamp:
            return ""
        return f"[{datetime.utcnow().isoformat()}] "

    def on_request(self, request: RequestDescriptor) -> None:
        self._started = time.monotonic()
        if self.outgoing:
            self.log.info(f"{self._prefix()}{request.method.value} {request.url}")

    def on_response(self, response: ApiResponse) -> None:
        elapsed = ""
        if self._started is not None:
            elapsed = f" {int((time.monotonic() - self._started) * 1000)}ms"
        request = response.raw.request
        self.log.info(f"{self._prefix()}{request.method} {request.url} {response.status_code}{elapsed}")

    def on_error(self, error: BaseException) -> None:
        self.log.error(f"{self._prefix()}Request failed: {type(error).__name__}: {error}")
