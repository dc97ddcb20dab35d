from typing import Any, Optional

import pytest


class FakeClient:
    """In-memory stand-in for SpenderClient that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.user: dict[str, Any] = {
            "_id": "u1",
            "name": "Asha",
            "email": "asha@example.com",
            "token": "tok-1",
        }
        self.transactions: dict[str, Any] = {"transactions": [], "total": 0}
        self.stats: list[dict[str, Any]] = []
        self.categories: list[dict[str, Any]] = []
        self.accounts: list[dict[str, Any]] = []
        self.net_worth = 0
        self.error: Optional[Exception] = None

    def _record(self, name: str, payload: Any = None) -> None:
        self.calls.append((name, payload))
        if self.error is not None:
            raise self.error

    def login(self, email: str, password: str) -> dict[str, Any]:
        self._record("login", {"email": email, "password": password})
        return dict(self.user)

    def register(self, name: str, email: str, password: str) -> dict[str, Any]:
        self._record("register", {"name": name, "email": email})
        return dict(self.user, name=name, email=email)

    def forgot_password(self, email: str) -> dict[str, Any]:
        self._record("forgot_password", email)
        return {"success": True}

    def reset_password(self, token: str, password: str) -> dict[str, Any]:
        self._record("reset_password", token)
        return {"success": True}

    def list_transactions(self, params: dict[str, object]) -> dict[str, Any]:
        self._record("list_transactions", params)
        return self.transactions

    def transaction_stats(self, params: dict[str, object]) -> list[dict[str, Any]]:
        self._record("transaction_stats", params)
        return self.stats

    def category_summary(self, params=None) -> list[dict[str, Any]]:
        self._record("category_summary", params)
        return self.categories

    def create_transaction(self, payload: dict[str, object]) -> dict[str, Any]:
        self._record("create_transaction", payload)
        return {"success": True}

    def update_transaction(self, transaction_id: str, payload) -> dict[str, Any]:
        self._record("update_transaction", (transaction_id, payload))
        return {"success": True}

    def delete_transaction(self, transaction_id: str) -> dict[str, Any]:
        self._record("delete_transaction", transaction_id)
        return {"success": True}

    def list_accounts(self) -> list[dict[str, Any]]:
        self._record("list_accounts")
        return self.accounts

    def account_summary(self) -> dict[str, Any]:
        self._record("account_summary")
        return {"totalNetWorth": self.net_worth}

    def create_account(self, payload: dict[str, object]) -> dict[str, Any]:
        self._record("create_account", payload)
        return {"success": True}

    def update_account(self, account_id: str, payload) -> dict[str, Any]:
        self._record("update_account", (account_id, payload))
        return {}

    def delete_account(self, account_id: str) -> dict[str, Any]:
        self._record("delete_account", account_id)
        return {"success": True}

    def calls_named(self, name: str) -> list[Any]:
        return [payload for call, payload in self.calls if call == name]


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()
