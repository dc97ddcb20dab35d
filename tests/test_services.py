from datetime import date
from decimal import Decimal

import pytest

from models import Division
from periods import TimeWindow
from schemas import TransferIn
from services import (
    AccountService,
    AnalyticsFilters,
    AnalyticsService,
    DivisionService,
    LedgerFilters,
    LedgerService,
    parse_stat_rows,
)


def _accounts() -> list[dict]:
    return [
        {"_id": "a1", "name": "HDFC", "type": "bank", "balance": 1000},
        {"_id": "a2", "name": "Wallet", "type": "cash", "balance": 50},
    ]


def test_malformed_stat_rows_are_skipped() -> None:
    rows = parse_stat_rows(
        [
            {"_id": {"year": 2024, "month": 13, "type": "income"}, "total": 5},
            {"_id": {"year": 2024, "month": 2, "type": "income"}, "total": 7},
            {"total": 3},
        ]
    )

    assert len(rows) == 1
    assert rows[0].total == Decimal("7")


def test_ledger_page_sends_filters_and_pagination(fake_client) -> None:
    fake_client.transactions = {
        "transactions": [
            {
                "_id": "t1",
                "description": "Lunch",
                "amount": 120,
                "type": "expense",
                "date": "2024-02-03T00:00:00Z",
            }
        ],
        "total": 11,
    }
    filters = LedgerFilters(division=Division.office, category="food")

    page = LedgerService(fake_client).page(filters, 2)

    params = fake_client.calls_named("list_transactions")[0]
    assert params["division"] == "office"
    assert params["category"] == "food"
    assert params["type"] is None
    assert params["page"] == 2
    assert params["limit"] == 5
    assert page.has_previous
    assert page.has_next
    assert page.entries[0].description == "Lunch"


def test_analytics_report_range_error_is_recoverable(fake_client) -> None:
    filters = AnalyticsFilters(window=TimeWindow(date(2024, 5, 1), date(2024, 1, 1)))

    report = AnalyticsService(fake_client).report(
        filters, today=date(2024, 6, 1), locale="en_US"
    )

    assert report.series == []
    assert "precedes" in report.range_error
    assert fake_client.calls_named("transaction_stats")[0]["timeframe"] == "monthly"


def test_analytics_report_combines_series_and_breakdown(fake_client) -> None:
    fake_client.stats = [
        {"_id": {"year": 2024, "month": 5, "type": "income"}, "total": 1000},
        {"_id": {"year": 2024, "month": 5, "type": "expense"}, "total": 400},
    ]
    fake_client.categories = [
        {"_id": {"category": "food", "type": "expense"}, "total": 400}
    ]

    report = AnalyticsService(fake_client).report(
        AnalyticsFilters(), today=date(2024, 6, 1), locale="en_US"
    )

    assert len(report.series) == 12
    assert report.summary.balance == Decimal("600")
    assert report.breakdown[0].percent == Decimal("100")
    assert report.range_error is None


def test_division_service_requests_all_divisions(fake_client) -> None:
    overviews = DivisionService(fake_client).overviews()

    assert fake_client.calls_named("transaction_stats") == [{"allDivisions": True}]
    assert len(overviews) == 2


def test_transfer_posts_transfer_transaction(fake_client) -> None:
    fake_client.accounts = _accounts()

    AccountService(fake_client).transfer(
        "a1",
        TransferIn(to_account_id="a2", amount=Decimal("250")),
        today=date(2024, 2, 3),
    )

    assert fake_client.calls_named("create_transaction") == [
        {
            "type": "transfer",
            "division": "personal",
            "category": "transfer",
            "amount": 250.0,
            "description": "Transfer: HDFC → Wallet",
            "account": "a1",
            "transferToAccount": "a2",
            "date": "2024-02-03",
        }
    ]


def test_transfer_to_same_account_is_rejected(fake_client) -> None:
    fake_client.accounts = _accounts()

    with pytest.raises(ValueError):
        AccountService(fake_client).transfer(
            "a1",
            TransferIn(to_account_id="a1", amount=Decimal("1")),
            today=date(2024, 2, 3),
        )

    assert fake_client.calls_named("create_transaction") == []


def test_net_worth_reads_summary(fake_client) -> None:
    fake_client.net_worth = Decimal("1050.25")

    assert AccountService(fake_client).net_worth() == Decimal("1050.25")


def test_ledger_page_survives_garbled_total(fake_client) -> None:
    fake_client.transactions = {
        "transactions": [
            {
                "_id": "t1",
                "description": "Rent",
                "amount": 9000,
                "type": "expense",
                "date": "2024-02-01T00:00:00Z",
            }
        ],
        "total": "many",
    }

    page = LedgerService(fake_client).page(LedgerFilters())

    assert page.total == 1
    assert not page.has_next
