"""Expense endpoints used by the receipt pipeline."""

from datetime import date
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from propertyledger.api.dependencies import get_current_user
from propertyledger.database import get_db
from propertyledger.models.user import User
from propertyledger.schemas.expense import DuplicateCheckResponse
from propertyledger.services.duplicate_detector import check_duplicate_expense

router = APIRouter(prefix="/api/v1/expenses", tags=["expenses"])


@router.get("/check-duplicate", response_model=DuplicateCheckResponse)
def check_duplicate(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    property_id: Annotated[int, Query()],
    amount: Annotated[Decimal, Query(gt=0)],
    expense_date: Annotated[date, Query(alias="date")],
):
    """Check whether an expense with the same property, amount and date exists."""
    return check_duplicate_expense(
        db, current_user.account_id, property_id, amount, expense_date
    )
