"""Tests for the SLURM REST API fetcher and its JWT expiry check."""

import base64
import json
import time

import httpx
import pytest

from slurm_sinfo_exporter import parser
from slurm_sinfo_exporter.errors import FetchFailure, SourceError
from slurm_sinfo_exporter.slurmrestapi import client

BASE_URL = "http://slurmrestd:6820"


def _make_jwt(payload: dict) -> str:
    """Build a minimal unsigned JWT string from a payload dict."""
    header = {"alg": "HS256", "typ": "JWT"}
    h = base64.urlsafe_b64encode(json.dumps(header).encode()).rstrip(b"=").decode()
    p = base64.urlsafe_b64encode(json.dumps(payload).encode()).rstrip(b"=").decode()
    return f"{h}.{p}.fakesignature"


def _client_with(handler, **kwargs) -> client.SlurmRestApiClient:
    return client.SlurmRestApiClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# validate_jwt_not_expired
# ---------------------------------------------------------------------------


def test_validate_jwt_valid_token_does_not_raise():
    """JWT with a future expiry passes validation."""
    client.validate_jwt_not_expired(_make_jwt({"exp": int(time.time()) + 3600}))


def test_validate_jwt_expired_token_raises():
    """Expired JWT raises ExpiredTokenError."""
    token = _make_jwt({"exp": int(time.time()) - 60})
    with pytest.raises(client.ExpiredTokenError, match="expired"):
        client.validate_jwt_not_expired(token)


@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt-token",
        "header.payload",
        "header.!!!invalid!!!.signature",
        _make_jwt({"sub": "user"}),
    ],
)
def test_validate_jwt_unverifiable_tokens_are_skipped(token: str):
    """Tokens whose expiry cannot be read are accepted with a warning."""
    client.validate_jwt_not_expired(token)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_client_init_raises_on_expired_token(tmp_path):
    """Client refuses to initialize when the token file holds an expired JWT."""
    token_file = tmp_path / "token"
    token_file.write_text(_make_jwt({"exp": int(time.time()) - 60}))

    with pytest.raises(client.ExpiredTokenError):
        client.SlurmRestApiClient(base_url=BASE_URL, token_file=str(token_file))


def test_client_init_missing_token_file(tmp_path):
    """A token file path that does not exist is rejected."""
    with pytest.raises(FileNotFoundError):
        client.SlurmRestApiClient(
            base_url=BASE_URL,
            token_file=str(tmp_path / "missing"),
        )


@pytest.mark.parametrize(
    ("base_url", "timeout"),
    [("", 30.0), (BASE_URL, 0.0), (BASE_URL, -1.0)],
)
def test_client_init_rejects_invalid_arguments(base_url: str, timeout: float):
    """Empty base URLs and non-positive timeouts are rejected."""
    with pytest.raises(ValueError):
        client.SlurmRestApiClient(base_url=base_url, timeout=timeout)


# ---------------------------------------------------------------------------
# get_nodes_payload
# ---------------------------------------------------------------------------


def test_get_nodes_payload_returns_raw_body():
    """The response body is returned unparsed."""
    body = b'{"meta": {}, "errors": [], "nodes": []}'
    api_client = _client_with(lambda request: httpx.Response(200, content=body))

    assert api_client.get_nodes_payload() == body


def test_get_nodes_payload_requests_versioned_endpoint():
    """The nodes endpoint includes the configured API version."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"{}")

    api_client = _client_with(handler, api_version="v0.0.40")
    api_client.get_nodes_payload()

    assert seen[0].url.path == "/slurm/v0.0.40/nodes"


def test_get_nodes_payload_sends_token_header(tmp_path):
    """The token read from the token file is sent with each request."""
    token = _make_jwt({"exp": int(time.time()) + 3600})
    token_file = tmp_path / "token"
    token_file.write_text(token + "\n")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"{}")

    api_client = _client_with(handler, token_file=str(token_file))
    api_client.get_nodes_payload()

    assert seen[0].headers["X-SLURM-USER-TOKEN"] == token


def test_get_nodes_payload_http_error_status_is_fetch_failure():
    """Error status codes are reported as FetchFailure."""
    api_client = _client_with(lambda request: httpx.Response(500, content=b"boom"))

    with pytest.raises(FetchFailure, match="500"):
        api_client.get_nodes_payload()


def test_get_nodes_payload_transport_error_is_fetch_failure():
    """Connection errors are reported as FetchFailure."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    api_client = _client_with(handler)

    with pytest.raises(FetchFailure, match="connection refused"):
        api_client.get_nodes_payload()


def test_get_nodes_payload_rest_error_body_is_source_error():
    """A 200 response carrying slurmrestd error objects parses as SourceError."""
    body = json.dumps(
        {
            "meta": {},
            "errors": [{"error": "Unable to contact slurm controller", "errno": 1}],
            "nodes": [],
        }
    ).encode()
    api_client = _client_with(lambda request: httpx.Response(200, content=body))

    with pytest.raises(SourceError, match="^Unable to contact slurm controller$"):
        parser.parse_nodes(api_client.get_nodes_payload())


def test_context_manager_closes_client():
    """Leaving the context manager closes the thread-local httpx client."""
    with _client_with(lambda request: httpx.Response(200, content=b"{}")) as api_client:
        http_client = api_client.client
        api_client.get_nodes_payload()

    assert http_client.is_closed
