import io
import json
from decimal import Decimal
from urllib.error import HTTPError, URLError

import pytest

import api_client
from api_client import ApiError, ApiUnavailable, SessionExpired, SpenderClient


class FakeResponse:
    def __init__(self, payload, status: int = 200) -> None:
        self.status = status
        self._body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


def _capture(monkeypatch, payload, status: int = 200) -> list:
    seen = []

    def fake_urlopen(req, timeout):
        seen.append(req)
        return FakeResponse(payload, status)

    monkeypatch.setattr(api_client, "urlopen", fake_urlopen)
    return seen


def _http_error(monkeypatch, status: int, payload) -> None:
    def fake_urlopen(req, timeout):
        body = io.BytesIO(json.dumps(payload).encode("utf-8"))
        raise HTTPError(req.full_url, status, "error", {}, body)

    monkeypatch.setattr(api_client, "urlopen", fake_urlopen)


def test_requests_carry_bearer_token(monkeypatch) -> None:
    seen = _capture(monkeypatch, {"success": True, "data": []})
    client = SpenderClient("https://api.example.test/", token="abc")

    client.list_accounts()

    req = seen[0]
    assert req.full_url == "https://api.example.test/api/accounts"
    assert req.get_header("Authorization") == "Bearer abc"


def test_anonymous_requests_have_no_authorization(monkeypatch) -> None:
    seen = _capture(monkeypatch, {"token": "t", "name": "A"})

    SpenderClient("https://api.example.test").login("a@b.co", "secret")

    req = seen[0]
    assert req.get_header("Authorization") is None
    assert req.get_method() == "POST"
    assert json.loads(req.data) == {"email": "a@b.co", "password": "secret"}


def test_blank_params_are_omitted(monkeypatch) -> None:
    seen = _capture(monkeypatch, {"success": True, "data": []})
    client = SpenderClient("https://api.example.test", token="abc")

    client.transaction_stats(
        {
            "division": "office",
            "category": None,
            "startDate": "",
            "allDivisions": True,
        }
    )

    assert seen[0].full_url == (
        "https://api.example.test/api/transactions/stats"
        "?division=office&allDivisions=true"
    )


def test_stats_amounts_are_decimals(monkeypatch) -> None:
    row = {"_id": {"year": 2024, "month": 1, "type": "income"}, "total": 10.1}
    _capture(monkeypatch, {"success": True, "data": [row]})

    rows = SpenderClient("https://x.test", token="t").transaction_stats({})

    assert rows[0]["total"] == Decimal("10.1")


def test_success_false_is_an_api_error(monkeypatch) -> None:
    _capture(monkeypatch, {"success": False, "message": "Edit window closed"})
    client = SpenderClient("https://x.test", token="t")

    with pytest.raises(ApiError) as excinfo:
        client.update_transaction("tx1", {"amount": 1})

    assert excinfo.value.message == "Edit window closed"


def test_http_error_message_is_surfaced(monkeypatch) -> None:
    _http_error(monkeypatch, 400, {"message": "User already exists"})

    with pytest.raises(ApiError) as excinfo:
        SpenderClient("https://x.test").register("A", "a@b.co", "secret1")

    assert excinfo.value.status == 400
    assert str(excinfo.value) == "User already exists"


def test_unauthorized_with_token_expires_session(monkeypatch) -> None:
    _http_error(monkeypatch, 401, {"message": "Not authorized, token failed"})

    with pytest.raises(SessionExpired):
        SpenderClient("https://x.test", token="stale").list_accounts()


def test_unauthorized_login_is_a_plain_api_error(monkeypatch) -> None:
    _http_error(monkeypatch, 401, {"message": "Invalid email or password"})

    with pytest.raises(ApiError) as excinfo:
        SpenderClient("https://x.test").login("a@b.co", "wrong")

    assert excinfo.value.status == 401


def test_network_failure_is_unavailable(monkeypatch) -> None:
    def fake_urlopen(req, timeout):
        raise URLError("connection refused")

    monkeypatch.setattr(api_client, "urlopen", fake_urlopen)

    with pytest.raises(ApiUnavailable):
        SpenderClient("https://x.test", token="t").account_summary()


def test_reset_token_is_path_quoted(monkeypatch) -> None:
    seen = _capture(monkeypatch, {"success": True})

    SpenderClient("https://x.test").reset_password("a/b c", "secret1")

    assert seen[0].full_url == "https://x.test/api/auth/reset-password/a%2Fb%20c"
    assert seen[0].get_method() == "PUT"


def test_undecodable_body_is_unavailable(monkeypatch) -> None:
    class GarbageResponse(FakeResponse):
        def read(self) -> bytes:
            return b"\xff\xfe garbage"

    monkeypatch.setattr(
        api_client, "urlopen", lambda req, timeout: GarbageResponse({})
    )

    with pytest.raises(ApiUnavailable):
        SpenderClient("https://x.test", token="t").list_accounts()


def test_non_json_body_is_unavailable(monkeypatch) -> None:
    class HtmlResponse(FakeResponse):
        def read(self) -> bytes:
            return b"<html>Bad gateway</html>"

    monkeypatch.setattr(api_client, "urlopen", lambda req, timeout: HtmlResponse({}))

    with pytest.raises(ApiUnavailable):
        SpenderClient("https://x.test", token="t").transaction_stats({})
