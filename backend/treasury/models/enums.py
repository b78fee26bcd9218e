# Overview: Closed value sets for cash-register and liquidation columns.

from __future__ import annotations

import enum

from ..extensions import db


class TransactionType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"

    def opposite(self) -> "TransactionType":
        if self is TransactionType.INCOME:
            return TransactionType.EXPENSE
        if self is TransactionType.EXPENSE:
            return TransactionType.INCOME
        raise ValueError(f"Unhandled transaction type {self!r}")


class TransactionCategory(str, enum.Enum):
    SERVICE_PAYMENT = "SERVICE_PAYMENT"
    SUPPLIER_PAYMENT = "SUPPLIER_PAYMENT"
    COMMISSION_LIQUIDATION = "COMMISSION_LIQUIDATION"
    CASH_DIFFERENCE = "CASH_DIFFERENCE"
    SERVICE_REFUND = "SERVICE_REFUND"
    OTHER = "OTHER"


class TransactionStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    VOIDED = "voided"


class SessionStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class LiquidationStatus(str, enum.Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


def enum_column(enum_cls: type[enum.Enum], length: int = 32) -> db.Enum:
    """
    String-backed enum column storing the member *value* ("active", "INCOME").

    Non-native so SQLite and Postgres store the same VARCHAR; the CHECK
    constraint rejects anything outside the enum at the database too.
    """
    return db.Enum(
        enum_cls,
        native_enum=False,
        create_constraint=True,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
        name=f"ck_{enum_cls.__name__.lower()}",
    )
