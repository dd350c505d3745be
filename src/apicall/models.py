"""
Request and response data models for the ApiCall facade
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import parse_qsl

import httpx

from apicall.exceptions import InvalidMethodError, ResponseParseError

DEFAULT_REDIRECTS = 5

# Statuses retried by default when a retry policy is set
RETRYABLE_STATUS_CODES = frozenset({408, 413, 429, 500, 502, 503, 504, 521, 522, 524})

# Shorthands accepted by set_content_type / set_accept / set_type
MIME_SHORTHANDS = {
    "json": "application/json",
    "form": "application/x-www-form-urlencoded",
    "urlencoded": "application/x-www-form-urlencoded",
    "form-data": "multipart/form-data",
    "text": "text/plain",
    "html": "text/html",
    "xml": "application/xml",
    "png": "image/png",
    "string": "text/plain",
}


class ApiMethod(str, Enum):
    """HTTP methods supported by ApiCall"""
    GET = "GET"
    POST = "POST"
    PATCH = "PATCH"
    PUT = "PUT"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"

    @classmethod
    def parse(cls, method: Union["ApiMethod", str]) -> "ApiMethod":
        """Resolve a member or a case-insensitive method name"""
        if isinstance(method, cls):
            return method
        if isinstance(method, str):
            try:
                return cls(method.upper())
            except ValueError:
                pass
        raise InvalidMethodError(method)


def resolve_mime(value: str) -> str:
    """Expand a shorthand such as 'json' into a full mime type"""
    if "/" in value:
        return value
    return MIME_SHORTHANDS.get(value.lower(), value)


@dataclass
class TimeoutPolicy:
    """Deadline for the whole request and per-response read timeout, in seconds"""
    deadline: Optional[float] = None
    response: Optional[float] = None


@dataclass
class RetryPolicy:
    count: int = 0
    callback: Optional[Callable[[Optional[BaseException], Optional["ApiResponse"]], Optional[bool]]] = None


@dataclass
class TLSConfig:
    verify: bool = True
    trust_localhost: bool = False
    ca: Optional[str] = None
    cert: Optional[str] = None
    key: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.ca or self.cert)


@dataclass
class RequestDescriptor:
    """Mutable description of one outgoing request"""
    endpoint: str
    method: ApiMethod
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    query: List[Tuple[str, str]] = field(default_factory=list)
    body: Any = None
    serializer: Optional[Callable[[Any], Union[str, bytes]]] = None
    parser: Optional[Callable[[str], Any]] = None
    fields: List[Tuple[str, str]] = field(default_factory=list)
    files: List[Tuple[str, Any]] = field(default_factory=list)
    auth: Optional[httpx.Auth] = None
    tls: TLSConfig = field(default_factory=TLSConfig)
    timeout: TimeoutPolicy = field(default_factory=TimeoutPolicy)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    redirects: int = DEFAULT_REDIRECTS
    host_overrides: Dict[str, str] = field(default_factory=dict)
    http2: bool = False
    buffer: bool = True

    @property
    def url(self) -> httpx.URL:
        url = httpx.URL(self.endpoint)
        if self.query:
            url = url.copy_merge_params(self.query)
        return url

    @property
    def content_type(self) -> Optional[str]:
        value = self.headers.get("content-type")
        if value is None:
            return None
        return value.split(";")[0].strip().lower()

    @property
    def is_multipart(self) -> bool:
        return bool(self.fields or self.files)

    def encode_body(self) -> Dict[str, Any]:
        """Build the httpx keyword arguments carrying the body"""
        if self.is_multipart:
            # text fields go out as filename-less parts so the body is always multipart
            parts = [
                (name, (None, value.encode("utf-8") if isinstance(value, str) else value))
                for name, value in self.fields
            ]
            return {"files": parts + self.files}
        if self.body is None:
            return {}
        if self.serializer is not None:
            return {"content": self.serializer(self.body)}
        if isinstance(self.body, (str, bytes)):
            return {"content": self.body}
        if self.content_type == MIME_SHORTHANDS["form"]:
            return {"content": str(httpx.QueryParams(self.body))}
        return {"content": json.dumps(self.body)}

    def to_json(self) -> Dict[str, Any]:
        return {
            "method": self.method.value,
            "url": str(self.url),
            "data": self.body,
            "headers": [item for pair in self.headers.items() for item in pair],
        }


@dataclass
class ApiResponse:
    """Outcome of a dispatched request"""
    status_code: int
    headers: httpx.Headers
    body: Any
    text: str
    content_type: str
    raw: httpx.Response
    # set when the body did not decode for its content type; body is None then
    parse_error: Optional[ResponseParseError] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def server_error(self) -> bool:
        return 500 <= self.status_code < 600

    @property
    def unauthorized(self) -> bool:
        return self.status_code == 401

    @property
    def reason_phrase(self) -> str:
        return httpx.codes.get_reason_phrase(self.status_code)

    def get(self, header: str) -> Optional[str]:
        return self.headers.get(header)

    @classmethod
    def from_httpx(
        cls,
        response: httpx.Response,
        parser: Optional[Callable[[str], Any]] = None,
        buffer: bool = True
    ) -> "ApiResponse":
        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        text = response.text
        body = None
        parse_error = None
        if buffer and response.content:
            try:
                body = _parse_body(text, content_type, parser)
            except ResponseParseError as e:
                parse_error = e
        return cls(
            status_code=response.status_code,
            headers=response.headers,
            body=body,
            text=text,
            content_type=content_type,
            raw=response,
            parse_error=parse_error,
        )


def _parse_body(text: str, content_type: str, parser: Optional[Callable[[str], Any]]) -> Any:
    if parser is not None:
        return parser(text)
    if content_type == "application/json" or content_type.endswith("+json"):
        try:
            return json.loads(text)
        except ValueError as e:
            raise ResponseParseError(f"Invalid JSON response body: {e}") from e
    if content_type == MIME_SHORTHANDS["form"]:
        return dict(parse_qsl(text, keep_blank_values=True))
    return None
