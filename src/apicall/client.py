"""
Fluent request builder and response assertion facade over httpx

Every configuration method mutates one field of the underlying request
descriptor and returns the same ApiCall so calls can be chained. Expectations
are evaluated when the request is dispatched by one of the terminal
operations, `done` or `end`.
"""

import asyncio
import inspect
import logging
import os
import re
import ssl
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl

import httpx

from apicall.exceptions import (
    ApiCallError,
    ExpectationError,
    RequestAbortedError,
    RequestAlreadySentError,
    RequestTimeoutError,
    ResponseNotAvailableError,
    TransportError,
    UnsuccessfulResponseError,
)
from apicall.models import (
    MIME_SHORTHANDS,
    RETRYABLE_STATUS_CODES,
    ApiMethod,
    ApiResponse,
    RequestDescriptor,
    RetryPolicy,
    TimeoutPolicy,
    resolve_mime,
)
from apicall.plugins import RequestLogger

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
LOCALHOST_NAMES = {"localhost", "127.0.0.1", "::1"}

# Host override key used by direct_request_to
ANY_HOST = "*"

Handler = Callable[[Any], Any]
Expectation = Callable[[ApiResponse], None]


class BearerAuth(httpx.Auth):
    """Authorization: Bearer <token>"""

    def __init__(self, token: str):
        self.token = token

    def auth_flow(self, request: httpx.Request):
        request.headers["Authorization"] = f"Bearer {self.token}"
        yield request


def _seconds(value: Optional[float]) -> Optional[float]:
    if not value:
        return None
    return float(value)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ApiCall:
    """Chainable wrapper around a single outgoing HTTP request"""

    def __init__(
        self,
        endpoint: str,
        method: Union[ApiMethod, str],
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._request = RequestDescriptor(endpoint=endpoint, method=ApiMethod.parse(method))
        self._transport = transport
        self._response: Optional[ApiResponse] = None
        self._expectations: List[Expectation] = []
        self._success_condition: Optional[Callable[[ApiResponse], bool]] = None
        self._handlers: Dict[str, List[Tuple[Handler, bool]]] = {"request": [], "response": [], "error": []}
        self._sent = False
        self._aborted = False
        self._task: Optional[asyncio.Task] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def endpoint(self) -> str:
        return self._request.endpoint

    @property
    def method(self) -> ApiMethod:
        return self._request.method

    def __repr__(self) -> str:
        return f"<ApiCall {self.method.value} {self.endpoint}>"

    # ------------------------------------------------------------------
    # Headers, content negotiation, query
    # ------------------------------------------------------------------

    def set_headers(self, headers: Mapping[str, str]) -> "ApiCall":
        self._request.headers.update(headers)
        return self

    def set_header(self, key: str, value: str) -> "ApiCall":
        self._request.headers[key] = value
        return self

    def unset_header(self, key: str) -> "ApiCall":
        self._request.headers.pop(key, None)
        return self

    def set_content_type(self, value: str) -> "ApiCall":
        """Set Content-Type; accepts full mime types or shorthands like 'json' and 'form'"""
        self._request.headers["Content-Type"] = resolve_mime(value)
        return self

    def set_type(self, type: str = "json") -> "ApiCall":
        """Choose how structured bodies are serialized: 'json' or 'form'"""
        if type not in ("json", "form"):
            raise ValueError(f"Unsupported body type: {type}")
        return self.set_content_type(type)

    def set_accept(self, type: str = "json") -> "ApiCall":
        self._request.headers["Accept"] = resolve_mime(type)
        return self

    def set_query_param(self, key: str, value: str) -> "ApiCall":
        self._request.query.append((key, str(value)))
        return self

    def set_query_params(self, query: Mapping[str, str]) -> "ApiCall":
        self._request.query.extend((key, str(value)) for key, value in query.items())
        return self

    def set_query(self, query: str) -> "ApiCall":
        """Append a raw query string such as 'page=2&sort=name'"""
        self._request.query.extend(parse_qsl(query.lstrip("?"), keep_blank_values=True))
        return self

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    def set_body(self, body: Union[str, bytes, Dict[str, Any], List[Any]]) -> "ApiCall":
        """
        Set the request body

        Successive dict bodies are merged; any other value replaces the
        current body.
        """
        current = self._request.body
        if isinstance(current, dict) and isinstance(body, dict):
            self._request.body = {**current, **body}
        else:
            self._request.body = body
        return self

    def set_form_body(self, body: Mapping[str, Any]) -> "ApiCall":
        self.set_content_type("form")
        self._request.body = dict(body)
        return self

    def attach(
        self,
        field_name: str,
        file: Union[str, os.PathLike, bytes, Any],
        filename: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> "ApiCall":
        """
        Add a file part to a multipart body

        Args:
            field_name: Form field name
            file: Path to a file, raw bytes or a binary file object
            filename: Filename sent with the part (defaults to the file's name)
            content_type: Part content type (guessed from the filename if omitted)
        """
        if isinstance(file, (str, os.PathLike)):
            path = Path(file)
            content = path.read_bytes()
            filename = filename or path.name
        else:
            content = file
            if filename is None and getattr(file, "name", None):
                filename = Path(str(file.name)).name
        self._request.files.append((field_name, (filename or field_name, content, content_type)))
        return self

    def attach_image(self, field_name: str, file: Union[str, os.PathLike, bytes, Any]) -> "ApiCall":
        return self.attach(field_name, file)

    def set_multipart_field(self, field_name: str, field_value: Any) -> "ApiCall":
        values = field_value if isinstance(field_value, (list, tuple)) else [field_value]
        for value in values:
            if isinstance(value, bool):
                value = "true" if value else "false"
            elif not isinstance(value, (str, bytes)):
                value = str(value)
            self._request.fields.append((field_name, value))
        return self

    def set_serializer(self, serializer: Callable[[Any], Union[str, bytes]]) -> "ApiCall":
        self._request.serializer = serializer
        return self

    def set_parser(self, parser: Callable[[str], Any]) -> "ApiCall":
        self._request.parser = parser
        return self

    # ------------------------------------------------------------------
    # Event handlers and plugins
    # ------------------------------------------------------------------

    def _add_handler(self, event: str, handler: Handler, once: bool) -> "ApiCall":
        self._handlers[event].append((handler, once))
        return self

    def _emit(self, event: str, payload: Any) -> None:
        for entry in list(self._handlers[event]):
            handler, once = entry
            if once:
                self._handlers[event].remove(entry)
            handler(payload)

    def set_once_error_handler(self, handler: Callable[[BaseException], Any]) -> "ApiCall":
        return self._add_handler("error", handler, once=True)

    def set_on_error_handler(self, handler: Callable[[BaseException], Any]) -> "ApiCall":
        return self._add_handler("error", handler, once=False)

    def set_once_response_handler(self, handler: Callable[[ApiResponse], Any]) -> "ApiCall":
        return self._add_handler("response", handler, once=True)

    def set_on_response_handler(self, handler: Callable[[ApiResponse], Any]) -> "ApiCall":
        return self._add_handler("response", handler, once=False)

    def set_on_request_handler(self, handler: Callable[[RequestDescriptor], Any]) -> "ApiCall":
        """Called with the request descriptor before every attempt"""
        return self._add_handler("request", handler, once=False)

    def set_plugin(self, fn: Callable[["ApiCall"], Any]) -> "ApiCall":
        fn(self)
        return self

    def enable_logging(self, outgoing: bool = True, timestamp: bool = True) -> "ApiCall":
        return self.set_plugin(RequestLogger(outgoing=outgoing, timestamp=timestamp))

    # ------------------------------------------------------------------
    # Connection, TLS, auth
    # ------------------------------------------------------------------

    def direct_request_to(self, ip_address: str) -> "ApiCall":
        """Connect to ip_address while keeping the endpoint's hostname in Host and SNI"""
        self._request.host_overrides[ANY_HOST] = ip_address
        return self

    def direct_requests_to(self, ip_addresses: Mapping[str, str]) -> "ApiCall":
        self._request.host_overrides.update(ip_addresses)
        return self

    def trust_localhost(self, enable: bool = True) -> "ApiCall":
        self._request.tls.trust_localhost = enable
        return self

    def disable_tls_certs(self) -> "ApiCall":
        self._request.tls.verify = False
        return self

    def set_ca_certificate(self, ca: str) -> "ApiCall":
        """PEM encoded CA bundle used to verify the server"""
        self._request.tls.ca = ca
        return self

    def set_client_certificate(self, client_cert: str) -> "ApiCall":
        """Path to the PEM client certificate"""
        self._request.tls.cert = client_cert
        return self

    def set_client_pvt_key(self, pvt_key: str) -> "ApiCall":
        """Path to the PEM private key of the client certificate"""
        self._request.tls.key = pvt_key
        return self

    set_client_private_key = set_client_pvt_key

    def set_bearer_auth_token(self, token: str) -> "ApiCall":
        return self.set_header("Authorization", f"Bearer {token}")

    def set_basic_auth_token(self, token: str) -> "ApiCall":
        return self.set_header("Authorization", f"Basic {token}")

    def set_digest_auth_token(self, token: str) -> "ApiCall":
        return self.set_header("Authorization", f"Digest {token}")

    def set_bearer_auth(self, token: str) -> "ApiCall":
        self._request.auth = BearerAuth(token)
        return self

    def set_auth(self, user: str, password: str, type: str = "basic") -> "ApiCall":
        if type in ("basic", "auto"):
            self._request.auth = httpx.BasicAuth(user, password)
        elif type == "digest":
            self._request.auth = httpx.DigestAuth(user, password)
        else:
            raise ValueError(f"Unsupported auth type: {type}")
        return self

    def set_basic_auth(self, user: str, password: str) -> "ApiCall":
        return self.set_auth(user, password, type="basic")

    # ------------------------------------------------------------------
    # Transport policy
    # ------------------------------------------------------------------

    def set_success_condition(self, callback: Callable[[ApiResponse], bool]) -> "ApiCall":
        self._success_condition = callback
        return self

    def set_retry(
        self,
        count: int,
        callback: Optional[Callable[[Optional[BaseException], Optional[ApiResponse]], Optional[bool]]] = None
    ) -> "ApiCall":
        self._request.retry = RetryPolicy(count=max(0, int(count)), callback=callback)
        return self

    def set_redirect(self, count: int) -> "ApiCall":
        self._request.redirects = max(0, int(count))
        return self

    def set_timeout(self, timeout: Union[float, Mapping[str, Optional[float]]]) -> "ApiCall":
        """
        Set the timeout policy, in seconds

        A number is a deadline for the whole request including retries. A
        mapping may carry 'deadline' and 'response' (time to wait for the
        server to respond). 0 is treated like None: no deadline, and the
        client default for the response timeout.
        """
        if isinstance(timeout, Mapping):
            self._request.timeout = TimeoutPolicy(
                deadline=_seconds(timeout.get("deadline")),
                response=_seconds(timeout.get("response"))
            )
        else:
            self._request.timeout = TimeoutPolicy(deadline=_seconds(timeout))
        return self

    def clear_timeout(self) -> "ApiCall":
        """Drop the deadline and response timeout; httpx's 30s per-operation default still applies"""
        self._request.timeout = TimeoutPolicy()
        return self

    def enable_http2(self, enable: bool = True) -> "ApiCall":
        self._request.http2 = enable
        return self

    def set_buffer(self, enable: bool = True) -> "ApiCall":
        """When disabled the response body is not parsed; use pipe_response_to_file"""
        self._request.buffer = enable
        return self

    def abort(self) -> "ApiCall":
        self._aborted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return self

    def get_req_as_json(self) -> Dict[str, Any]:
        return self._request.to_json()

    # ------------------------------------------------------------------
    # Expectations
    # ------------------------------------------------------------------

    def expect_status(self, status: int, body: Any = None) -> "ApiCall":
        def check(response: ApiResponse) -> None:
            if response.status_code != status:
                raise ExpectationError(
                    f'expected {status} "{httpx.codes.get_reason_phrase(status)}", '
                    f'got {response.status_code} "{response.reason_phrase}"',
                    expected=status,
                    actual=response.status_code
                )

        self._expectations.append(check)
        if body is not None:
            self.expect_body(body)
        return self

    def expect_body(self, body: Any) -> "ApiCall":
        """
        Expect a response body

        A str is compared to the raw text, a compiled pattern is searched in
        the raw text, anything else is compared to the parsed body.
        """
        def check(response: ApiResponse) -> None:
            if isinstance(body, re.Pattern):
                if not body.search(response.text):
                    raise ExpectationError(
                        f"expected body {response.text!r} to match {body.pattern!r}",
                        expected=body.pattern,
                        actual=response.text
                    )
                return
            actual = response.text if isinstance(body, str) else response.body
            if actual != body:
                raise ExpectationError(
                    f"expected {body!r} response body, got {actual!r}",
                    expected=body,
                    actual=actual
                )

        self._expectations.append(check)
        return self

    def expect_field(self, field_name: str, value: Union[str, re.Pattern]) -> "ApiCall":
        """Expect a response header value (exact string or pattern match)"""
        def check(response: ApiResponse) -> None:
            actual = response.headers.get(field_name)
            if actual is None:
                raise ExpectationError(f'expected "{field_name}" header field', expected=value)
            if isinstance(value, re.Pattern):
                if not value.search(actual):
                    raise ExpectationError(
                        f'expected "{field_name}" matching {value.pattern!r}, got "{actual}"',
                        expected=value.pattern,
                        actual=actual
                    )
            elif actual != value:
                raise ExpectationError(
                    f'expected "{field_name}" of "{value}", got "{actual}"',
                    expected=value,
                    actual=actual
                )

        self._expectations.append(check)
        return self

    def expect_response(self, checker: Callable[[ApiResponse], Any]) -> "ApiCall":
        """Run checker(response); raising or returning an exception fails the call"""
        def check(response: ApiResponse) -> None:
            try:
                result = checker(response)
            except ExpectationError:
                raise
            except Exception as e:
                raise ExpectationError(str(e) or type(e).__name__, actual=response) from e
            if isinstance(result, Exception):
                raise ExpectationError(str(result) or type(result).__name__, actual=response) from result

        self._expectations.append(check)
        return self

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _target(self) -> Tuple[httpx.URL, httpx.Headers, Dict[str, Any]]:
        request = self._request
        url = request.url
        headers = httpx.Headers(request.headers)
        extensions: Dict[str, Any] = {}

        if request.is_multipart:
            # httpx writes its own multipart Content-Type with the boundary
            headers.pop("Content-Type", None)
        elif "content-type" not in headers and isinstance(request.body, (dict, list)) and request.serializer is None:
            headers["Content-Type"] = MIME_SHORTHANDS["json"]

        ip_address = request.host_overrides.get(url.host) or request.host_overrides.get(ANY_HOST)
        if ip_address:
            if "host" not in headers:
                headers["Host"] = url.netloc.decode("ascii")
            if url.scheme == "https":
                extensions["sni_hostname"] = url.host
            url = url.copy_with(host=ip_address)

        return url, headers, extensions

    def _verify(self, url: httpx.URL) -> Union[bool, ssl.SSLContext]:
        tls = self._request.tls
        skip_verify = not tls.verify or (tls.trust_localhost and url.host in LOCALHOST_NAMES)
        if skip_verify and not tls.cert:
            return False
        if not tls.configured:
            return True
        if skip_verify:
            # client certificate still goes out when the server is not verified
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        elif tls.ca:
            context = ssl.create_default_context(cadata=tls.ca)
        else:
            context = ssl.create_default_context()
        if tls.cert:
            context.load_cert_chain(certfile=tls.cert, keyfile=tls.key)
        return context

    def _client(self, url: httpx.URL) -> httpx.AsyncClient:
        request = self._request
        read_timeout = request.timeout.response if request.timeout.response is not None else DEFAULT_TIMEOUT
        return httpx.AsyncClient(
            transport=self._transport,
            verify=self._verify(url),
            http2=request.http2,
            follow_redirects=request.redirects > 0,
            max_redirects=request.redirects,
            timeout=httpx.Timeout(DEFAULT_TIMEOUT, read=read_timeout),
        )

    async def _send_once(self) -> ApiResponse:
        request = self._request
        self._emit("request", request)
        url, headers, extensions = self._target()

        async with self._client(url) as client:
            try:
                raw = await client.request(
                    request.method.value,
                    url,
                    headers=headers,
                    auth=request.auth,
                    extensions=extensions,
                    **request.encode_body()
                )
            except httpx.TimeoutException as e:
                raise RequestTimeoutError(f"Timeout waiting for response from {url}: {e}") from e
            except httpx.HTTPError as e:
                raise TransportError(f"{request.method.value} {url} failed: {e}") from e

        return ApiResponse.from_httpx(raw, parser=request.parser, buffer=request.buffer)

    def _should_retry(self, error: Optional[BaseException], response: Optional[ApiResponse]) -> bool:
        callback = self._request.retry.callback
        if callback is not None:
            override = callback(error, response)
            if override is True or override is False:
                return override
        if error is not None:
            return isinstance(error, TransportError)
        return response is not None and response.status_code in RETRYABLE_STATUS_CODES

    async def _send_with_retries(self) -> ApiResponse:
        retry = self._request.retry
        attempt = 0
        while True:
            error: Optional[TransportError] = None
            response: Optional[ApiResponse] = None
            try:
                response = await self._send_once()
            except TransportError as e:
                error = e

            if attempt >= retry.count or not self._should_retry(error, response):
                if error is not None:
                    raise error
                return response

            attempt += 1
            reason = error if error is not None else f"status {response.status_code}"
            logger.warning(f"Retrying {self.method.value} {self.endpoint} ({attempt}/{retry.count}) after {reason}")

    async def _send(self) -> ApiResponse:
        deadline = self._request.timeout.deadline
        if deadline is None:
            return await self._send_with_retries()
        try:
            return await asyncio.wait_for(self._send_with_retries(), deadline)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(f"Timeout of {deadline}s exceeded for {self.endpoint}") from e

    def _check(self, response: ApiResponse) -> None:
        if self._success_condition is not None and not self._success_condition(response):
            raise UnsuccessfulResponseError(response.status_code)
        for expectation in self._expectations:
            expectation(response)

    def _claim(self) -> None:
        if self._sent:
            raise RequestAlreadySentError()
        self._sent = True

    async def _dispatch(self) -> ApiResponse:
        if self._aborted:
            raise RequestAbortedError()

        self._task = asyncio.ensure_future(self._send())
        try:
            response = await self._task
        except asyncio.CancelledError:
            if not self._aborted:
                raise
            error = RequestAbortedError()
            self._emit("error", error)
            raise error from None
        except TransportError as e:
            self._emit("error", e)
            raise
        finally:
            self._task = None

        self._response = response
        self._emit("response", response)
        try:
            self._check(response)
            if response.parse_error is not None:
                raise response.parse_error
        except ApiCallError as e:
            self._emit("error", e)
            raise
        return response

    async def done(
        self,
        on_fulfilled: Optional[Callable[[ApiResponse], Any]] = None,
        on_rejected: Optional[Callable[[Exception], Any]] = None
    ) -> Any:
        """
        Dispatch the request and wait for the response

        Args:
            on_fulfilled: Called with the response; its result is returned
            on_rejected: Called with the error instead of raising it

        Returns:
            The ApiResponse, or the result of whichever handler ran

        Raises:
            RequestAlreadySentError: A terminal operation already ran
            ExpectationError: A registered expectation did not hold
            TransportError: The request could not be completed
        """
        self._claim()
        try:
            response = await self._dispatch()
        except Exception as e:
            if on_rejected is None:
                raise
            return await _resolve(on_rejected(e))
        if on_fulfilled is None:
            return response
        return await _resolve(on_fulfilled(response))

    def end(self, callback: Optional[Callable[[Optional[Exception], Optional[ApiResponse]], Any]] = None) -> None:
        """
        Dispatch without waiting; callback(error, response) runs exactly once

        Inside a running event loop the request is scheduled as a task,
        otherwise it runs to completion before end returns.
        """
        self._claim()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._dispatch_and_notify(callback))
            return
        self._pending = loop.create_task(self._dispatch_and_notify(callback))

    async def _dispatch_and_notify(self, callback: Optional[Callable[..., Any]]) -> None:
        try:
            response = await self._dispatch()
        except Exception as e:
            if callback is None:
                logger.error(f"{self.method.value} {self.endpoint} failed: {e}")
                return
            await _resolve(callback(e, self._response))
            return
        if callback is not None:
            await _resolve(callback(None, response))

    # ------------------------------------------------------------------
    # Response accessors
    # ------------------------------------------------------------------

    def _require_response(self) -> ApiResponse:
        if self._response is None:
            raise ResponseNotAvailableError()
        return self._response

    def get_response_text(self) -> str:
        return self._require_response().text

    def get_response_body(self) -> Any:
        return self._require_response().body

    def get_response_headers(self) -> httpx.Headers:
        return self._require_response().headers

    def get_response_header(self, header_name: str) -> Optional[str]:
        return self._require_response().get(header_name)

    def get_response_content_type(self) -> str:
        return self._require_response().content_type

    def get_response_status_code(self) -> int:
        return self._require_response().status_code

    def client_error_response(self) -> bool:
        return self._require_response().client_error

    def server_error_response(self) -> bool:
        return self._require_response().server_error

    def ok_response(self) -> bool:
        return self._require_response().ok

    def unauthorized_response(self) -> bool:
        return self._require_response().unauthorized

    def get_raw_response(self) -> Optional[ApiResponse]:
        return self._response

    def get_raw_request(self) -> RequestDescriptor:
        return self._request

    def pipe_response_to_file(self, file_path: Union[str, os.PathLike]) -> None:
        """Write the raw response body to file_path"""
        response = self._require_response()
        with open(file_path, "wb") as fh:
            for chunk in response.raw.iter_bytes():
                fh.write(chunk)
