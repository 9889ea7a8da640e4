"""Expense schemas used by the receipt pipeline."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class ExistingExpenseResponse(BaseModel):
    """The expense a candidate would duplicate."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    date: date
    amount: Decimal
    description: str | None = None


class DuplicateCheckResponse(BaseModel):
    """Result of a duplicate-expense check."""

    model_config = ConfigDict(from_attributes=True)

    is_duplicate: bool
    existing_expense: ExistingExpenseResponse | None = None
