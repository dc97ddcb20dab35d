from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from analytics import (
    CategoryShare,
    ChartPoint,
    DivisionOverview,
    FlowSummary,
    build_chart_series,
    division_overviews,
    expense_breakdown,
    summarize_flows,
)
from api_client import SpenderClient
from models import TRANSFER_CATEGORY, Division, LedgerTab, TransactionType
from periods import InvalidRangeError, TimeWindow
from schemas import (
    Account,
    AccountIn,
    AccountUpdateIn,
    CategorySummaryRow,
    ForgotPasswordIn,
    LedgerEntry,
    LoginIn,
    RegisterIn,
    ResetPasswordIn,
    StatRow,
    TransactionIn,
    TransferIn,
    UserInfo,
)

logger = logging.getLogger(__name__)

LEDGER_PAGE_SIZE = 5


def parse_stat_rows(raw_rows: Iterable[dict[str, Any]]) -> list[StatRow]:
    rows: list[StatRow] = []
    for raw in raw_rows:
        try:
            rows.append(StatRow.model_validate(raw))
        except ValidationError as exc:
            logger.warning(f"stat_row_skipped: errors={exc.error_count()}")
    return rows


def parse_category_rows(raw_rows: Iterable[dict[str, Any]]) -> list[CategorySummaryRow]:
    rows: list[CategorySummaryRow] = []
    for raw in raw_rows:
        try:
            rows.append(CategorySummaryRow.model_validate(raw))
        except ValidationError as exc:
            logger.warning(f"category_row_skipped: errors={exc.error_count()}")
    return rows


def _user_from_response(payload: dict[str, Any]) -> UserInfo:
    try:
        return UserInfo.model_validate(payload)
    except ValidationError as exc:
        raise ValueError("Authentication response did not contain a token") from exc


class AuthService:
    def __init__(self, client: SpenderClient) -> None:
        self.client = client

    def login(self, data: LoginIn) -> UserInfo:
        user = _user_from_response(self.client.login(data.email, data.password))
        logger.info(f"login: user_id={user.id}")
        return user

    def register(self, data: RegisterIn) -> UserInfo:
        user = _user_from_response(
            self.client.register(data.name, data.email, data.password)
        )
        logger.info(f"register: user_id={user.id}")
        return user

    def request_password_reset(self, data: ForgotPasswordIn) -> None:
        self.client.forgot_password(data.email.strip())
        logger.info("password_reset_requested")

    def reset_password(self, token: str, data: ResetPasswordIn) -> None:
        if not token:
            raise ValueError("Reset link is missing its token")
        self.client.reset_password(token, data.password)
        logger.info("password_reset_completed")


@dataclass
class LedgerFilters:
    division: Division = Division.personal
    tab: LedgerTab = LedgerTab.all
    category: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None

    def query_params(self) -> dict[str, object]:
        return {
            "division": self.division.value,
            "category": self.category,
            "startDate": self.start.isoformat() if self.start else None,
            "endDate": self.end.isoformat() if self.end else None,
            "type": None if self.tab == LedgerTab.all else self.tab.value,
        }


@dataclass
class LedgerPage:
    entries: list[LedgerEntry]
    total: int
    page: int
    per_page: int = LEDGER_PAGE_SIZE

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page * self.per_page < self.total


class LedgerService:
    def __init__(self, client: SpenderClient) -> None:
        self.client = client

    def page(self, filters: LedgerFilters, page: int = 1) -> LedgerPage:
        page = max(page, 1)
        params = filters.query_params()
        params.update({"page": page, "limit": LEDGER_PAGE_SIZE})
        result = self.client.list_transactions(params)
        entries: list[LedgerEntry] = []
        for raw in result.get("transactions") or []:
            try:
                entries.append(LedgerEntry.model_validate(raw))
            except ValidationError as exc:
                logger.warning(f"ledger_entry_skipped: errors={exc.error_count()}")
        try:
            total = int(result.get("total") or 0)
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"ledger_total_invalid: total={result.get('total')!r}")
            total = len(entries)
        return LedgerPage(entries=entries, total=total, page=page)

    def overview(self, division: Division) -> FlowSummary:
        raw = self.client.transaction_stats(
            {"timeframe": "monthly", "division": division.value}
        )
        return summarize_flows(parse_stat_rows(raw))

    def create(self, data: TransactionIn) -> None:
        self.client.create_transaction(data.to_payload())
        logger.info(f"transaction_created: type={data.type.value}")

    def update(self, transaction_id: str, data: TransactionIn) -> None:
        self.client.update_transaction(transaction_id, data.to_payload())
        logger.info(f"transaction_updated: id={transaction_id}")

    def delete(self, transaction_id: str) -> None:
        self.client.delete_transaction(transaction_id)
        logger.info(f"transaction_deleted: id={transaction_id}")


@dataclass
class AnalyticsFilters:
    division: Division = Division.personal
    window: TimeWindow = field(default_factory=TimeWindow)
    category: Optional[str] = None

    def query_params(self) -> dict[str, object]:
        return {
            "division": self.division.value,
            "startDate": self.window.start.isoformat() if self.window.start else None,
            "endDate": self.window.end.isoformat() if self.window.end else None,
            "category": self.category,
            "timeframe": "monthly",
        }


@dataclass
class AnalyticsReport:
    summary: FlowSummary
    series: list[ChartPoint]
    breakdown: list[CategoryShare]
    range_error: Optional[str] = None


class AnalyticsService:
    def __init__(self, client: SpenderClient) -> None:
        self.client = client

    def report(
        self, filters: AnalyticsFilters, *, today: date, locale: str
    ) -> AnalyticsReport:
        params = filters.query_params()
        stat_rows = parse_stat_rows(self.client.transaction_stats(params))
        category_rows = parse_category_rows(self.client.category_summary(params))
        summary = summarize_flows(stat_rows)

        range_error = None
        try:
            series = build_chart_series(
                stat_rows, filters.window, today=today, locale=locale
            )
        except InvalidRangeError as exc:
            logger.info(f"analytics_range_rejected: {exc}")
            series = []
            range_error = str(exc)

        return AnalyticsReport(
            summary=summary,
            series=series,
            breakdown=expense_breakdown(category_rows, total=summary.expense),
            range_error=range_error,
        )


class DivisionService:
    def __init__(self, client: SpenderClient) -> None:
        self.client = client

    def overviews(self) -> list[DivisionOverview]:
        stat_rows = parse_stat_rows(
            self.client.transaction_stats({"allDivisions": True})
        )
        category_rows = parse_category_rows(self.client.category_summary())
        return division_overviews(stat_rows, category_rows)


class AccountService:
    def __init__(self, client: SpenderClient) -> None:
        self.client = client

    def list_all(self) -> list[Account]:
        accounts: list[Account] = []
        for raw in self.client.list_accounts():
            try:
                accounts.append(Account.model_validate(raw))
            except ValidationError as exc:
                logger.warning(f"account_skipped: errors={exc.error_count()}")
        return accounts

    def net_worth(self) -> Decimal:
        value = self.client.account_summary().get("totalNetWorth") or 0
        return Decimal(str(value))

    def create(self, data: AccountIn) -> None:
        self.client.create_account(data.to_payload())
        logger.info(f"account_created: type={data.type.value}")

    def update(self, account_id: str, data: AccountUpdateIn) -> Optional[Account]:
        raw = self.client.update_account(account_id, data.to_payload())
        logger.info(f"account_updated: id={account_id}")
        if not raw:
            return None
        return Account.model_validate(raw)

    def delete(self, account_id: str) -> None:
        self.client.delete_account(account_id)
        logger.info(f"account_deleted: id={account_id}")

    def transfer(self, source_id: str, data: TransferIn, *, today: date) -> None:
        if data.to_account_id == source_id:
            raise ValueError("Choose a different target account")
        accounts = {account.id: account for account in self.list_all()}
        source = accounts.get(source_id)
        target = accounts.get(data.to_account_id)
        if source is None or target is None:
            raise ValueError("Account not found")

        self.client.create_transaction(
            {
                "type": TransactionType.transfer.value,
                "division": Division.personal.value,
                "category": TRANSFER_CATEGORY,
                "amount": float(data.amount),
                "description": f"Transfer: {source.name} → {target.name}",
                "account": source.id,
                "transferToAccount": target.id,
                "date": today.isoformat(),
            }
        )
        logger.info(f"transfer_posted: from={source.id} to={target.id}")
