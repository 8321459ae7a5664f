"""Tests for the HTTP client (SCIMClient) against the mock SCIM server.

Covers bearer auth and Content-Type headers, query suffixes, 429 retry
behavior, typed errors, and secret redaction.
"""

import pytest
import requests

from scim_provision.http_client import (
    SCIMAPIError,
    SCIMClient,
    SCIMResponse,
    SCIMResponseError,
    SCIMTransportError,
    _parse_retry_after,
    redact_auth,
)
from tests.mock_scim_server import MockSCIMServer


@pytest.fixture
def server():
    with MockSCIMServer() as s:
        yield s


@pytest.fixture
def client(server):
    return SCIMClient(server.base_url, token="test-token")


def test_bearer_token_on_every_request(server, client):
    client.get("Groups")
    client.post("Groups", {"schemas": [], "displayName": "x"})
    assert len(server.requests) == 2
    for req in server.requests:
        assert req.headers["Authorization"] == "Bearer test-token"
        assert req.headers["Content-Type"] == "application/scim+json"


def test_query_suffix_is_appended(server, client):
    resp = client.get("Groups", query='?filter=displayName%20eq%20%22Admins%22')
    assert resp.status_code == 200
    assert server.requests[0].path == "/Groups"
    assert server.requests[0].filter == 'displayName eq "Admins"'


def test_post_sends_json_body(server, client):
    resp = client.post("Users", {"userName": "a@example.com"})
    assert resp.status_code == 201
    assert server.requests[0].body == {"userName": "a@example.com"}
    assert "id" in resp.json()


def test_put_and_patch(server, client):
    gid = server.add_group("Admins")
    resp = client.patch(f"Groups/{gid}", {"Operations": [
        {"op": "add", "path": "members", "value": [{"value": "u1"}]},
    ]})
    assert resp.status_code == 200
    assert server.groups[gid]["members"] == [{"value": "u1"}]

    uid = server.add_user("a@example.com", "a_example_com")
    resp = client.put(f"Users/{uid}", {"name": {"givenName": "A", "familyName": ""}})
    assert resp.json()["name"]["givenName"] == "A"


def test_base_url_trailing_slash(server):
    client = SCIMClient(server.base_url + "/", token="t")
    client.get("/Groups")
    assert server.requests[0].path == "/Groups"


def test_429_retry():
    """Client should automatically retry on 429 with Retry-After."""
    with MockSCIMServer(non_conformances={"throttle_count": 2}) as server:
        client = SCIMClient(server.base_url, token="t")
        resp = client.get("Groups")
        assert resp.status_code == 200
        assert len(server.requests) == 3


def test_429_gives_up_after_max_retries():
    with MockSCIMServer(non_conformances={"throttle_count": 5}) as server:
        client = SCIMClient(server.base_url, token="t", max_retries=1)
        resp = client.get("Groups")
        assert resp.status_code == 429
        assert len(server.requests) == 2
        with pytest.raises(SCIMAPIError) as exc:
            resp.raise_for_status()
        assert exc.value.status == 429


def test_raise_for_status_uses_scim_detail(client):
    resp = client.get("Groups/missing")
    with pytest.raises(SCIMAPIError) as exc:
        resp.raise_for_status()
    assert exc.value.status == 404
    assert exc.value.detail == "Resource not found"


def test_raise_for_status_returns_self_on_success(client):
    resp = client.get("Groups")
    assert resp.raise_for_status() is resp


def test_non_json_body_raises_response_error():
    with MockSCIMServer(non_conformances={"non_json": True}) as server:
        client = SCIMClient(server.base_url, token="t")
        resp = client.get("Groups")
        with pytest.raises(SCIMResponseError):
            resp.json()


def test_empty_body_parses_to_none():
    assert SCIMResponse(204, {}, "").json() is None


def test_header_lookup_is_case_insensitive():
    resp = SCIMResponse(200, {"Retry-After": "3"}, "")
    assert resp.header("retry-after") == "3"
    assert resp.header("ETag") is None


def test_transport_failure_is_wrapped():
    class BrokenSession:
        def request(self, method, url, **kwargs):
            raise requests.ConnectionError("connection refused")

    client = SCIMClient("https://scim.invalid/v2", token="t", session=BrokenSession())
    with pytest.raises(SCIMTransportError) as exc:
        client.get("Groups")
    assert "connection refused" in str(exc.value)


def test_timeout_is_passed_to_requests():
    seen = {}

    class RecordingSession:
        def request(self, method, url, **kwargs):
            seen.update(kwargs, method=method, url=url)
            raise requests.Timeout("slow")

    client = SCIMClient("https://scim.example.com/v2", token="t", timeout=5,
                        session=RecordingSession())
    with pytest.raises(SCIMTransportError):
        client.patch("Groups/g1", {"Operations": []})
    assert seen["timeout"] == 5
    assert seen["method"] == "PATCH"
    assert seen["url"] == "https://scim.example.com/v2/Groups/g1"
    assert seen["data"] == '{"Operations": []}'


def test_parse_retry_after():
    assert _parse_retry_after(None) == 2
    assert _parse_retry_after("") == 2
    assert _parse_retry_after("0") == 0
    assert _parse_retry_after("7") == 7
    assert _parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 2


def test_redact_auth():
    headers = {
        "Authorization": "Bearer secret-token-123",
        "Content-Type": "application/scim+json",
    }
    redacted = redact_auth(headers)
    assert redacted["Authorization"] == "***REDACTED***"
    assert redacted["Content-Type"] == "application/scim+json"
    # Original should not be mutated
    assert headers["Authorization"] == "Bearer secret-token-123"
