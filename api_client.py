from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from config import get_settings

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class SessionExpired(RuntimeError):
    """The backend rejected the bearer token of a signed-in user."""


class ApiUnavailable(RuntimeError):
    pass


def _error_message(payload: Any, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return default


def _clean_params(params: Optional[dict[str, object]]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        cleaned[key] = str(value)
    return cleaned


class SpenderClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    @classmethod
    def from_settings(cls, token: Optional[str] = None) -> "SpenderClient":
        settings = get_settings()
        return cls(settings.api_url, token=token, timeout=settings.api_timeout_secs)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, object]] = None,
        payload: Optional[dict[str, object]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        query = urlencode(_clean_params(params))
        if query:
            url = f"{url}?{query}"
        headers = {"Accept": "application/json"}
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        req = Request(url, data=data, headers=headers, method=method)

        try:
            with urlopen(req, timeout=self.timeout) as resp:
                status = resp.status
                raw_body = resp.read()
        except HTTPError as exc:
            status = exc.code
            try:
                body = exc.read().decode("utf-8")
                error_payload = json.loads(body) if body else None
            except (ValueError, OSError):
                error_payload = None
            message = _error_message(error_payload, f"Request failed ({status})")
            logger.warning(
                f"api_error: method={method} path={path} status={status} "
                f"message={message!r}"
            )
            if status == 401 and self.token:
                raise SessionExpired(message) from exc
            raise ApiError(status, message) from exc
        except (URLError, TimeoutError) as exc:
            logger.warning(f"api_unreachable: method={method} path={path} error={exc}")
            raise ApiUnavailable(f"Spender API unreachable: {method} {path}") from exc

        try:
            body = raw_body.decode("utf-8")
            result = json.loads(body, parse_float=Decimal) if body else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning(f"api_undecodable: method={method} path={path}")
            raise ApiUnavailable(f"Unexpected response from {method} {path}") from exc

        if isinstance(result, dict) and result.get("success") is False:
            message = _error_message(result, "Request rejected")
            logger.warning(
                f"api_rejected: method={method} path={path} message={message!r}"
            )
            raise ApiError(status, message)

        logger.info(f"api_call: method={method} path={path} status={status}")
        return result

    @staticmethod
    def _data_list(result: Any) -> list[dict[str, Any]]:
        if isinstance(result, dict):
            data = result.get("data")
            if isinstance(data, list):
                return data
        return []

    # auth

    def login(self, email: str, password: str) -> dict[str, Any]:
        return self._request(
            "POST", "/api/auth/login", payload={"email": email, "password": password}
        )

    def register(self, name: str, email: str, password: str) -> dict[str, Any]:
        return self._request(
            "POST",
            "/api/auth/register",
            payload={"name": name, "email": email, "password": password},
        )

    def forgot_password(self, email: str) -> dict[str, Any]:
        return self._request(
            "POST", "/api/auth/forgot-password", payload={"email": email}
        )

    def reset_password(self, token: str, password: str) -> dict[str, Any]:
        return self._request(
            "PUT",
            f"/api/auth/reset-password/{quote(token, safe='')}",
            payload={"password": password},
        )

    # transactions

    def list_transactions(self, params: dict[str, object]) -> dict[str, Any]:
        result = self._request("GET", "/api/transactions", params=params)
        if not isinstance(result, dict):
            return {"transactions": [], "total": 0}
        return result

    def transaction_stats(self, params: dict[str, object]) -> list[dict[str, Any]]:
        return self._data_list(
            self._request("GET", "/api/transactions/stats", params=params)
        )

    def category_summary(
        self, params: Optional[dict[str, object]] = None
    ) -> list[dict[str, Any]]:
        return self._data_list(
            self._request("GET", "/api/transactions/category-summary", params=params)
        )

    def create_transaction(self, payload: dict[str, object]) -> dict[str, Any]:
        return self._request("POST", "/api/transactions", payload=payload)

    def update_transaction(
        self, transaction_id: str, payload: dict[str, object]
    ) -> dict[str, Any]:
        return self._request(
            "PUT",
            f"/api/transactions/{quote(transaction_id, safe='')}",
            payload=payload,
        )

    def delete_transaction(self, transaction_id: str) -> dict[str, Any]:
        return self._request(
            "DELETE", f"/api/transactions/{quote(transaction_id, safe='')}"
        )

    # accounts

    def list_accounts(self) -> list[dict[str, Any]]:
        return self._data_list(self._request("GET", "/api/accounts"))

    def account_summary(self) -> dict[str, Any]:
        result = self._request("GET", "/api/accounts/summary")
        data = result.get("data") if isinstance(result, dict) else None
        return data if isinstance(data, dict) else {}

    def create_account(self, payload: dict[str, object]) -> dict[str, Any]:
        return self._request("POST", "/api/accounts", payload=payload)

    def update_account(
        self, account_id: str, payload: dict[str, object]
    ) -> dict[str, Any]:
        result = self._request(
            "PUT", f"/api/accounts/{quote(account_id, safe='')}", payload=payload
        )
        data = result.get("data") if isinstance(result, dict) else None
        return data if isinstance(data, dict) else {}

    def delete_account(self, account_id: str) -> dict[str, Any]:
        return self._request("DELETE", f"/api/accounts/{quote(account_id, safe='')}")
