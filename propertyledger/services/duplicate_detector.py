"""Advisory duplicate-expense detection."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from propertyledger.models.expense import Expense


@dataclass
class ExistingExpense:
    """The expense a candidate collides with."""

    id: str
    date: date
    amount: Decimal
    description: str | None


@dataclass
class DuplicateCheckResult:
    """Outcome of a duplicate check; existing_expense is set only for duplicates."""

    is_duplicate: bool
    existing_expense: ExistingExpense | None = None


def check_duplicate_expense(
    db: Session,
    account_id: int,
    property_id: int,
    amount: Decimal,
    expense_date: date,
) -> DuplicateCheckResult:
    """Look for an expense with the same property, amount and date.

    Dates must match exactly; there is no tolerance window. Soft-deleted
    expenses never count. The result is advisory and never blocks a save.
    """
    match = (
        db.query(Expense)
        .filter(
            Expense.account_id == account_id,
            Expense.property_id == property_id,
            Expense.amount == amount,
            Expense.date == expense_date,
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.created_at.desc())
        .first()
    )

    if match is None:
        return DuplicateCheckResult(is_duplicate=False)

    return DuplicateCheckResult(
        is_duplicate=True,
        existing_expense=ExistingExpense(
            id=match.id,
            date=match.date,
            amount=Decimal(match.amount),
            description=match.description,
        ),
    )
