from enum import Enum


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"
    transfer = "transfer"


class Division(str, Enum):
    personal = "personal"
    office = "office"


class AccountType(str, Enum):
    bank = "bank"
    cash = "cash"
    savings = "savings"
    credit_card = "credit_card"


class LedgerTab(str, Enum):
    all = "all"
    income = "income"
    expense = "expense"


# Categories offered when recording a transaction.
TRANSACTION_CATEGORIES = (
    "food",
    "fuel",
    "movie",
    "loan",
    "medical",
    "salary",
    "rent",
    "shopping",
    "other",
)

# Categories offered by the dashboard and analytics filter bars.
FILTER_CATEGORIES = ("salary", "food", "fuel", "movie", "loan", "medical", "other")

ACCOUNT_COLORS = ("#6366f1", "#f59e0b", "#10b981", "#ef4444", "#a855f7")
DEFAULT_ACCOUNT_COLOR = "#3B82F6"

TRANSFER_CATEGORY = "transfer"
