"""Chart-ready figures derived from the backend's aggregate rows.

The backend reports sparse monthly totals: one row per ``(year, month, type)``
that had any activity. The dashboard, analytics and divisions pages need dense
series and per-division summaries, all of which are computed here from the
already-fetched rows. Nothing in this module performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence

from babel.dates import format_date

from models import Division, TransactionType
from periods import MonthBucket, TimeWindow, resolve_buckets
from schemas import CategorySummaryRow, StatRow

ZERO = Decimal("0")

# Spending above this share of income is flagged on the division cards.
UTILIZATION_WARNING = Decimal("90")


@dataclass
class BucketTotals:
    income: Decimal = ZERO
    expense: Decimal = ZERO


@dataclass(frozen=True)
class ChartPoint:
    bucket: MonthBucket
    label: str
    income: Decimal
    expense: Decimal

    def as_dict(self) -> dict[str, object]:
        return {
            "year": self.bucket.year,
            "month": self.bucket.month,
            "label": self.label,
            "income": float(self.income),
            "expense": float(self.expense),
        }


@dataclass(frozen=True)
class FlowSummary:
    income: Decimal = ZERO
    expense: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense

    @property
    def utilization(self) -> Decimal:
        """Share of income already spent, in percent."""
        if self.income <= 0:
            return ZERO
        return (self.expense / self.income * 100).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )

    @property
    def over_utilized(self) -> bool:
        return self.utilization > UTILIZATION_WARNING


@dataclass(frozen=True)
class CategoryShare:
    name: str
    value: Decimal
    percent: Decimal


@dataclass
class DivisionOverview:
    division: Division
    summary: FlowSummary
    top_categories: list[CategoryShare] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.division.value.capitalize()


def normalize_stat_rows(rows: Iterable[StatRow]) -> dict[MonthBucket, BucketTotals]:
    # Each (bucket, type) is expected once; a repeated pair overwrites.
    totals: dict[MonthBucket, BucketTotals] = {}
    for row in rows:
        key = MonthBucket(row.bucket.year, row.bucket.month)
        entry = totals.setdefault(key, BucketTotals())
        if row.bucket.type == TransactionType.income.value:
            entry.income = row.total
        elif row.bucket.type == TransactionType.expense.value:
            entry.expense = row.total
    return totals


def month_label(bucket: MonthBucket, *, locale: str) -> str:
    return format_date(bucket.first_day, "MMM yy", locale=locale)


def materialize_series(
    totals: dict[MonthBucket, BucketTotals],
    buckets: Sequence[MonthBucket],
    *,
    locale: str,
) -> list[ChartPoint]:
    points: list[ChartPoint] = []
    for bucket in buckets:
        entry = totals.get(bucket) or BucketTotals()
        points.append(
            ChartPoint(
                bucket=bucket,
                label=month_label(bucket, locale=locale),
                income=entry.income,
                expense=entry.expense,
            )
        )
    return points


def build_chart_series(
    rows: Iterable[StatRow],
    window: TimeWindow,
    *,
    today: date,
    locale: str,
) -> list[ChartPoint]:
    buckets = resolve_buckets(window, today=today)
    return materialize_series(normalize_stat_rows(rows), buckets, locale=locale)


def summarize_flows(
    rows: Iterable[StatRow], *, division: Optional[Division] = None
) -> FlowSummary:
    income = ZERO
    expense = ZERO
    for row in rows:
        if division is not None and row.bucket.division != division.value:
            continue
        if row.bucket.type == TransactionType.income.value:
            income += row.total
        elif row.bucket.type == TransactionType.expense.value:
            expense += row.total
    return FlowSummary(income=income, expense=expense)


def _percent(value: Decimal, total: Decimal) -> Decimal:
    if total <= 0:
        return ZERO
    return (value / total * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def expense_breakdown(
    rows: Iterable[CategorySummaryRow],
    *,
    division: Optional[Division] = None,
    total: Optional[Decimal] = None,
    limit: Optional[int] = None,
) -> list[CategoryShare]:
    selected = [
        row
        for row in rows
        if row.key.type == TransactionType.expense.value
        and (division is None or row.key.division == division.value)
    ]
    if limit is not None:
        selected = selected[:limit]
    if total is None:
        total = sum((row.total for row in selected), ZERO)
    return [
        CategoryShare(
            name=row.key.category,
            value=row.total,
            percent=_percent(row.total, total),
        )
        for row in selected
    ]


def division_overviews(
    stat_rows: Sequence[StatRow],
    category_rows: Sequence[CategorySummaryRow],
    *,
    top: int = 3,
) -> list[DivisionOverview]:
    overviews: list[DivisionOverview] = []
    for division in Division:
        summary = summarize_flows(stat_rows, division=division)
        overviews.append(
            DivisionOverview(
                division=division,
                summary=summary,
                top_categories=expense_breakdown(
                    category_rows,
                    division=division,
                    total=summary.expense,
                    limit=top,
                ),
            )
        )
    return overviews


def combined_balance(overviews: Iterable[DivisionOverview]) -> Decimal:
    return sum((overview.summary.balance for overview in overviews), ZERO)
