"""Typed document schemas produced from ingested XML."""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

TEXT_KEY = "#text"
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _trim(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def _as_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _leaf_text(value: Any) -> Any:
    # An element carrying attributes arrives as a mapping; only its text matters here.
    if isinstance(value, dict):
        return value.get(TEXT_KEY)
    return value


def _parse_decimal(value: Any) -> Any:
    value = _leaf_text(value)
    if value is None or isinstance(value, Decimal):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"invalid decimal value: {text!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"invalid decimal value: {text!r}")
    return parsed


class _XmlRecord(BaseModel):
    """Lenient record: unknown elements are dropped, strings trimmed."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class Invoice(_XmlRecord):
    id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None

    @field_validator("id", "currency", mode="before")
    @classmethod
    def _trim_strings(cls, value: Any) -> Any:
        return _trim(_leaf_text(value))

    @field_validator("amount", mode="before")
    @classmethod
    def _strict_decimal(cls, value: Any) -> Any:
        return _parse_decimal(value)


class Direction(str, Enum):
    """Booking direction, encoded as ISO 20022 credit/debit codes."""

    CREDIT = "CRDT"
    DEBIT = "DBIT"


class Money(_XmlRecord):
    currency_code: Optional[str] = Field(default=None, alias="Ccy")
    value: Optional[Decimal] = Field(default=None, alias=TEXT_KEY)

    @field_validator("currency_code", mode="before")
    @classmethod
    def _trim_code(cls, value: Any) -> Any:
        return _trim(value)

    @field_validator("value", mode="before")
    @classmethod
    def _strict_decimal(cls, value: Any) -> Any:
        return _parse_decimal(value)


class Transaction(_XmlRecord):
    id: Optional[str] = None
    posting_date: Optional[date] = Field(default=None, alias="postingDate")
    amount: Optional[Money] = None
    direction: Optional[Direction] = None
    reference: Optional[str] = None
    counterparty: Optional[str] = None

    @field_validator("id", "reference", "counterparty", mode="before")
    @classmethod
    def _trim_strings(cls, value: Any) -> Any:
        return _trim(_leaf_text(value))

    @field_validator("posting_date", mode="before")
    @classmethod
    def _strict_date(cls, value: Any) -> Any:
        value = _leaf_text(value)
        if value is None or isinstance(value, date):
            return value
        text = str(value).strip()
        if not text:
            return None
        if not _ISO_DATE.match(text):
            raise ValueError(f"postingDate must be YYYY-MM-DD, got {text!r}")
        return date.fromisoformat(text)

    @field_validator("amount", mode="before")
    @classmethod
    def _money_from_text(cls, value: Any) -> Any:
        # <amount>12.00</amount> without a currency attribute
        if isinstance(value, str):
            return {TEXT_KEY: value}
        return value

    @field_validator("direction", mode="before")
    @classmethod
    def _trim_direction(cls, value: Any) -> Any:
        return _trim(_leaf_text(value)) or None


class Invoices(_XmlRecord):
    """Root ``<invoices>`` document: a sequence of ``<invoice>`` elements."""

    kind: ClassVar[str] = "Invoices"

    invoices: list[Invoice] = Field(default_factory=list, alias="invoice")

    @field_validator("invoices", mode="before")
    @classmethod
    def _wrap_single(cls, value: Any) -> Any:
        return _as_list(value)


class Transactions(_XmlRecord):
    """Root ``<transactions>`` document: a sequence of ``<transaction>`` elements."""

    kind: ClassVar[str] = "Transactions"

    transactions: list[Transaction] = Field(default_factory=list, alias="transaction")

    @field_validator("transactions", mode="before")
    @classmethod
    def _wrap_single(cls, value: Any) -> Any:
        return _as_list(value)


XmlDocument = Union[Invoices, Transactions]


__all__ = [
    "Direction",
    "Invoice",
    "Invoices",
    "Money",
    "TEXT_KEY",
    "Transaction",
    "Transactions",
    "XmlDocument",
]
