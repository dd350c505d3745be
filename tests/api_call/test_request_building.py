"""
Configuration methods: each one shapes the request that reaches the wire
"""

import base64
import io
import json
import ssl

import certifi
import httpx
import pytest

from apicall import ApiCall, ApiMethod, BearerAuth


ENDPOINT = "http://api.test/items"


class TestChaining:

    def test_configuration_methods_return_the_same_instance(self):
        call = ApiCall(ENDPOINT, ApiMethod.POST)
        chained = (
            call.set_headers({"X-One": "1"})
            .set_header("X-Two", "2")
            .unset_header("X-One")
            .set_content_type("json")
            .set_accept("json")
            .set_query_param("page", "2")
            .set_query_params({"sort": "name"})
            .set_query("filter=active")
            .set_body({"a": 1})
            .set_bearer_auth_token("abc")
            .set_retry(2)
            .set_redirect(3)
            .set_timeout(5)
            .clear_timeout()
            .enable_http2(False)
            .set_buffer(True)
            .trust_localhost()
            .expect_status(200)
        )
        assert chained is call

    def test_get_req_as_json_snapshot(self):
        call = (
            ApiCall(ENDPOINT, ApiMethod.POST)
            .set_header("X-Trace", "t-1")
            .set_query_param("page", "2")
            .set_body({"name": "A"})
        )
        snapshot = call.get_req_as_json()
        assert snapshot["method"] == "POST"
        assert snapshot["url"] == "http://api.test/items?page=2"
        assert snapshot["data"] == {"name": "A"}
        assert "x-trace" in snapshot["headers"]
        assert "t-1" in snapshot["headers"]


class TestHeadersAndQuery:

    @pytest.mark.asyncio
    async def test_headers_reach_the_wire(self, mock_server):
        mock_server.reply("GET", ENDPOINT, 200)
        await (
            ApiCall(ENDPOINT, "GET", transport=mock_server.transport)
            .set_headers({"X-Client": "tests", "X-Remove": "me"})
            .set_header("X-Single", "one")
            .unset_header("x-remove")
            .set_accept("json")
            .done()
        )
        headers = mock_server.last_request.headers
        assert headers["X-Client"] == "tests"
        assert headers["X-Single"] == "one"
        assert "X-Remove" not in headers
        assert headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_query_sources_accumulate(self, mock_server):
        mock_server.reply("GET", ENDPOINT, 200)
        await (
            ApiCall(ENDPOINT, "GET", transport=mock_server.transport)
            .set_query_param("page", "2")
            .set_query_params({"sort": "name", "limit": 10})
            .set_query("?filter=active&tag=a")
            .done()
        )
        params = mock_server.last_request.url.params
        assert params["page"] == "2"
        assert params["sort"] == "name"
        assert params["limit"] == "10"
        assert params["filter"] == "active"
        assert params["tag"] == "a"

    @pytest.mark.asyncio
    async def test_query_in_endpoint_is_kept(self, mock_server):
        mock_server.reply("GET", ENDPOINT, 200)
        await ApiCall(f"{ENDPOINT}?page=2", "GET", transport=mock_server.transport).set_query_param("q", "x").done()
        params = mock_server.last_request.url.params
        assert params["page"] == "2"
        assert params["q"] == "x"


class TestBody:

    @pytest.mark.asyncio
    async def test_dict_body_is_sent_as_json(self, mock_server):
        mock_server.reply("POST", ENDPOINT, 201)
        await ApiCall(ENDPOINT, "POST", transport=mock_server.transport).set_body({"name": "A", "age": 30}).done()
        assert mock_server.last_request.headers["Content-Type"] == "application/json"
        assert mock_server.last_json() == {"name": "A", "age": 30}

    @pytest.mark.asyncio
    async def test_successive_dict_bodies_merge(self, mock_server):
        mock_server.reply("POST", ENDPOINT, 201)
        await (
            ApiCall(ENDPOINT, "POST", transport=mock_server.transport)
            .set_body({"name": "A"})
            .set_body({"job": "B"})
            .done()
        )
        assert mock_server.last_json() == {"name": "A", "job": "B"}

    @pytest.mark.asyncio
    async def test_raw_string_body(self, mock_server):
        mock_server.reply("PUT", ENDPOINT, 200)
        await (
            ApiCall(ENDPOINT, "PUT", transport=mock_server.transport)
            .set_content_type("text")
            .set_body("plain words")
            .done()
        )
        assert mock_server.last_request.content == b"plain words"
        assert mock_server.last_request.headers["Content-Type"] == "text/plain"

    @pytest.mark.asyncio
    async def test_form_body(self, mock_server):
        mock_server.reply("POST", ENDPOINT, 200)
        await ApiCall(ENDPOINT, "POST", transport=mock_server.transport).set_form_body({"a": "1", "b": "x y"}).done()
        request = mock_server.last_request
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert request.content == b"a=1&b=x+y"

    @pytest.mark.asyncio
    async def test_set_type_form_encodes_dict_body(self, mock_server):
        mock_server.reply("POST", ENDPOINT, 200)
        await ApiCall(ENDPOINT, "POST", transport=mock_server.transport).set_type("form").set_body({"a": "1"}).done()
        assert mock_server.last_request.content == b"a=1"

    def test_set_type_rejects_unknown_types(self):
        with pytest.raises(ValueError):
            ApiCall(ENDPOINT, "POST").set_type("yaml")

    @pytest.mark.asyncio
    async def test_custom_serializer(self, mock_server):
        mock_server.reply("POST", ENDPOINT, 200)
        await (
            ApiCall(ENDPOINT, "POST", transport=mock_server.transport)
            .set_content_type("application/vnd.test")
            .set_serializer(lambda body: ";".join(f"{k}={v}" for k, v in body.items()))
            .set_body({"a": 1, "b": 2})
            .done()
        )
        assert mock_server.last_request.content == b"a=1;b=2"

    @pytest.mark.asyncio
    async def test_multipart_fields_and_files(self, mock_server, tmp_path):
        upload = tmp_path / "avatar.png"
        upload.write_bytes(b"\x89PNG-data")
        mock_server.reply("POST", ENDPOINT, 200)

        await (
            ApiCall(ENDPOINT, "POST", transport=mock_server.transport)
            .set_content_type("multipart/form-data")
            .set_multipart_field("name", "Krishna")
            .set_multipart_field("tags", ["a", "b"])
            .set_multipart_field("active", True)
            .attach_image("avatar", str(upload))
            .attach("notes", io.BytesIO(b"hello"), filename="notes.txt", content_type="text/plain")
            .done()
        )

        request = mock_server.last_request
        assert request.headers["Content-Type"].startswith("multipart/form-data; boundary=")
        body = request.content
        assert b'name="name"' in body and b"Krishna" in body
        assert body.count(b'name="tags"') == 2
        assert b"true" in body
        assert b'filename="avatar.png"' in body and b"\x89PNG-data" in body
        assert b'filename="notes.txt"' in body and b"hello" in body


class TestAuth:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method_name,scheme", [
        ("set_bearer_auth_token", "Bearer"),
        ("set_basic_auth_token", "Basic"),
        ("set_digest_auth_token", "Digest"),
    ])
    async def test_raw_authorization_tokens(self, mock_server, method_name, scheme):
        mock_server.reply("GET", ENDPOINT, 200)
        call = ApiCall(ENDPOINT, "GET", transport=mock_server.transport)
        await getattr(call, method_name)("tok3n").done()
        assert mock_server.last_request.headers["Authorization"] == f"{scheme} tok3n"

    @pytest.mark.asyncio
    async def test_bearer_auth(self, mock_server):
        mock_server.reply("GET", ENDPOINT, 200)
        call = ApiCall(ENDPOINT, "GET", transport=mock_server.transport).set_bearer_auth("jwt")
        assert isinstance(call.get_raw_request().auth, BearerAuth)
        await call.done()
        assert mock_server.last_request.headers["Authorization"] == "Bearer jwt"

    @pytest.mark.asyncio
    async def test_basic_auth(self, mock_server):
        mock_server.reply("GET", ENDPOINT, 200)
        await ApiCall(ENDPOINT, "GET", transport=mock_server.transport).set_basic_auth("user", "pass").done()
        expected = base64.b64encode(b"user:pass").decode()
        assert mock_server.last_request.headers["Authorization"] == f"Basic {expected}"

    def test_auth_types(self):
        call = ApiCall(ENDPOINT, "GET")
        assert isinstance(call.set_auth("u", "p", type="auto").get_raw_request().auth, httpx.BasicAuth)
        assert isinstance(call.set_auth("u", "p", type="digest").get_raw_request().auth, httpx.DigestAuth)
        with pytest.raises(ValueError):
            call.set_auth("u", "p", type="ntlm")


class TestConnectionOverrides:

    @pytest.mark.asyncio
    async def test_direct_request_to_keeps_host_header(self, mock_server):
        mock_server.reply("GET", "http://10.0.0.5/items", 200)
        await ApiCall(ENDPOINT, "GET", transport=mock_server.transport).direct_request_to("10.0.0.5").done()
        request = mock_server.last_request
        assert request.url.host == "10.0.0.5"
        assert request.headers["Host"] == "api.test"

    @pytest.mark.asyncio
    async def test_direct_requests_to_only_matching_host(self, mock_server):
        mock_server.reply("GET", ENDPOINT, 200)
        await (
            ApiCall(ENDPOINT, "GET", transport=mock_server.transport)
            .direct_requests_to({"other.test": "10.0.0.9"})
            .done()
        )
        assert mock_server.last_request.url.host == "api.test"

    def test_tls_settings_are_recorded(self):
        call = (
            ApiCall("https://api.test", "GET")
            .set_ca_certificate("-----BEGIN CERTIFICATE-----")
            .set_client_certificate("client.pem")
            .set_client_private_key("client.key")
            .trust_localhost(True)
        )
        tls = call.get_raw_request().tls
        assert tls.ca.startswith("-----BEGIN")
        assert tls.cert == "client.pem"
        assert tls.key == "client.key"
        assert tls.trust_localhost is True
        assert call.disable_tls_certs().get_raw_request().tls.verify is False


class TestTLSContext:
    """What the client is given as its verify argument"""

    HTTPS = httpx.URL("https://api.test/items")
    LOCAL = httpx.URL("https://localhost:8443/items")

    @pytest.fixture
    def loaded_chains(self, monkeypatch):
        chains = []

        def load_cert_chain(context, certfile, keyfile=None, password=None):
            chains.append((certfile, keyfile))

        monkeypatch.setattr(ssl.SSLContext, "load_cert_chain", load_cert_chain)
        return chains

    def test_default_verifies(self):
        assert ApiCall(ENDPOINT, "GET")._verify(self.HTTPS) is True

    def test_disabled_verification(self):
        assert ApiCall(ENDPOINT, "GET").disable_tls_certs()._verify(self.HTTPS) is False

    def test_trust_localhost_only_applies_to_localhost(self):
        call = ApiCall(ENDPOINT, "GET").trust_localhost()
        assert call._verify(self.LOCAL) is False
        assert call._verify(self.HTTPS) is True

    def test_ca_certificate_builds_a_verifying_context(self):
        context = ApiCall(ENDPOINT, "GET").set_ca_certificate(certifi.contents())._verify(self.HTTPS)
        assert isinstance(context, ssl.SSLContext)
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname is True

    def test_client_certificate_is_read(self, tmp_path):
        call = ApiCall(ENDPOINT, "GET").set_client_certificate(str(tmp_path / "missing.pem"))
        with pytest.raises(FileNotFoundError):
            call._verify(self.HTTPS)

    def test_client_certificate_is_read_without_verification(self, tmp_path):
        call = ApiCall(ENDPOINT, "GET").set_client_certificate(str(tmp_path / "missing.pem")).disable_tls_certs()
        with pytest.raises(FileNotFoundError):
            call._verify(self.HTTPS)

    def test_client_certificate_with_verification_disabled(self, loaded_chains):
        context = (
            ApiCall(ENDPOINT, "GET")
            .set_client_certificate("client.pem")
            .set_client_private_key("client.key")
            .disable_tls_certs()
            ._verify(self.HTTPS)
        )
        assert isinstance(context, ssl.SSLContext)
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False
        assert loaded_chains == [("client.pem", "client.key")]

    def test_client_certificate_with_trusted_localhost(self, loaded_chains):
        call = ApiCall(ENDPOINT, "GET").set_client_certificate("client.pem").trust_localhost()
        local = call._verify(self.LOCAL)
        remote = call._verify(self.HTTPS)
        assert local.verify_mode == ssl.CERT_NONE
        assert remote.verify_mode == ssl.CERT_REQUIRED
        assert loaded_chains == [("client.pem", None), ("client.pem", None)]

    def test_client_certificate_and_ca(self, loaded_chains):
        context = (
            ApiCall(ENDPOINT, "GET")
            .set_ca_certificate(certifi.contents())
            .set_client_certificate("client.pem")
            .set_client_private_key("client.key")
            ._verify(self.HTTPS)
        )
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert loaded_chains == [("client.pem", "client.key")]

    @pytest.mark.asyncio
    async def test_request_goes_out_with_verification_disabled(self, mock_server):
        mock_server.reply("GET", "https://api.test/items", 200)
        response = await (
            ApiCall("https://api.test/items", "GET", transport=mock_server.transport)
            .disable_tls_certs()
            .done()
        )
        assert response.status_code == 200

    def test_timeout_policy(self):
        call = ApiCall(ENDPOINT, "GET").set_timeout({"deadline": 10, "response": 2})
        timeout = call.get_raw_request().timeout
        assert (timeout.deadline, timeout.response) == (10, 2)
        call.set_timeout(1.5)
        assert call.get_raw_request().timeout.deadline == 1.5
        assert call.get_raw_request().timeout.response is None
        call.clear_timeout()
        assert call.get_raw_request().timeout.deadline is None


class TestResponseParsing:

    @pytest.mark.asyncio
    async def test_custom_parser(self, mock_server):
        mock_server.reply("GET", ENDPOINT, 200, text="a,b,c")
        call = ApiCall(ENDPOINT, "GET", transport=mock_server.transport).set_parser(lambda text: text.split(","))
        await call.done()
        assert call.get_response_body() == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_unbuffered_response_has_no_parsed_body(self, mock_server):
        mock_server.reply("GET", ENDPOINT, 200, json={"a": 1})
        call = ApiCall(ENDPOINT, "GET", transport=mock_server.transport).set_buffer(False)
        await call.done()
        assert call.get_response_body() is None
        assert json.loads(call.get_response_text()) == {"a": 1}

    @pytest.mark.asyncio
    async def test_form_encoded_response_is_parsed(self, mock_server):
        mock_server.reply(
            "GET", ENDPOINT, 200, text="a=1&b=two",
            headers={"Content-Type": "application/x-www-form-urlencoded"}
        )
        call = ApiCall(ENDPOINT, "GET", transport=mock_server.transport)
        await call.done()
        assert call.get_response_body() == {"a": "1", "b": "two"}
