"""SQLAlchemy models."""

from propertyledger.models.account import Account
from propertyledger.models.expense import Expense, ExpenseCategory
from propertyledger.models.property import Property
from propertyledger.models.receipt import Receipt
from propertyledger.models.user import User

__all__ = [
    "Account",
    "User",
    "Property",
    "ExpenseCategory",
    "Expense",
    "Receipt",
]
