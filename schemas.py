from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import (
    DEFAULT_ACCOUNT_COLOR,
    AccountType,
    Division,
    TransactionType,
)


def _passwords_match(password: str, confirm_password: str) -> None:
    if password != confirm_password:
        raise ValueError("Passwords do not match")


class LoginIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _strip_email(cls, value: str) -> str:
        return value.strip()


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=6)
    confirm_password: str

    @field_validator("name", "email")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def _check_confirmation(self) -> "RegisterIn":
        _passwords_match(self.password, self.confirm_password)
        return self


class ForgotPasswordIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)


class ResetPasswordIn(BaseModel):
    password: str = Field(..., min_length=6)
    confirm_password: str

    @model_validator(mode="after")
    def _check_confirmation(self) -> "ResetPasswordIn":
        _passwords_match(self.password, self.confirm_password)
        return self


class TransactionIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    type: TransactionType
    category: str = Field(default="other", min_length=1, max_length=50)
    division: Division
    date: dt.date
    payment_method: str = Field(default="cash", max_length=30)
    account_id: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _income_or_expense(cls, value: TransactionType) -> TransactionType:
        if value == TransactionType.transfer:
            raise ValueError("Transfers are recorded from the accounts page")
        return value

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Description is required")
        return value

    def to_payload(self) -> dict[str, object]:
        return {
            "description": self.description,
            "amount": float(self.amount),
            "type": self.type.value,
            "category": self.category,
            "division": self.division.value,
            "date": self.date.isoformat(),
            "paymentMethod": self.payment_method,
            "accountId": self.account_id or "",
        }


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=60)
    type: AccountType = AccountType.bank
    balance: Decimal = Decimal("0")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    color: str = Field(default=DEFAULT_ACCOUNT_COLOR, max_length=9)

    def to_payload(self) -> dict[str, object]:
        return {
            "name": self.name.strip(),
            "type": self.type.value,
            "balance": float(self.balance),
            "currency": self.currency.upper(),
            "color": self.color,
        }


class AccountUpdateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=60)
    color: str = Field(..., max_length=9)

    def to_payload(self) -> dict[str, object]:
        return {"name": self.name.strip(), "color": self.color}


class TransferIn(BaseModel):
    to_account_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)


class UserInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = Field(default=None, alias="_id")
    name: str = ""
    email: Optional[str] = None
    token: str = Field(..., min_length=1)


class StatBucket(BaseModel):
    year: int
    month: int = Field(..., ge=1, le=12)
    type: str
    division: Optional[str] = None


class StatRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bucket: StatBucket = Field(..., alias="_id")
    total: Decimal


class CategoryKey(BaseModel):
    category: str
    type: str
    division: Optional[str] = None


class CategorySummaryRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: CategoryKey = Field(..., alias="_id")
    total: Decimal


class Account(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    name: str
    type: str = AccountType.bank.value
    balance: Decimal = Decimal("0")
    currency: str = "INR"
    color: str = DEFAULT_ACCOUNT_COLOR

    @property
    def type_label(self) -> str:
        return self.type.replace("_", " ")


class LedgerEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    description: str = ""
    amount: Decimal
    type: str
    category: str = "other"
    division: Optional[str] = None
    date: datetime
    payment_method: str = Field(default="cash", alias="paymentMethod")
    account_id: Optional[str] = Field(default=None, alias="accountId")
    is_editable: bool = Field(default=False, alias="isEditable")

    @field_validator("account_id", mode="before")
    @classmethod
    def _account_ref(cls, value: object) -> object:
        # populated references arrive as the account document
        if isinstance(value, dict):
            return value.get("_id")
        return value

    @property
    def day(self) -> date:
        return self.date.date()
