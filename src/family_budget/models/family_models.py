"""
Family aggregate documents and the totals recalculation.

A family is stored as one MongoDB document embedding its members, and each
member embeds its expenses. The derived totals (family total_income and
total_expenses, member total_spent) are never updated incrementally: every
mutation goes through recalculate_totals() right before the document is
written, which recomputes all of them from the raw salaries and amounts.
"""

import copy
from datetime import datetime, timezone
import enum
import math
from typing import Any, Dict, List, Optional

from bson import ObjectId

MIN_FAMILY_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 6

TRUTHY_STRINGS = {"true", "1", "yes", "y", "on"}


class ExpenseCategory(str, enum.Enum):
    """Fixed set of expense categories."""

    FOOD = "Food"
    TRANSPORTATION = "Transportation"
    HOUSING = "Housing"
    UTILITIES = "Utilities"
    HEALTHCARE = "Healthcare"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    OTHERS = "Others"

    @classmethod
    def values(cls) -> List[str]:
        return [category.value for category in cls]


EXPENSE_CATEGORIES = ExpenseCategory.values()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_bool(value: Any) -> bool:
    """Lenient flag parsing: absent or unrecognised values are False."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return False


def parse_number(value: Any) -> Optional[float]:
    """Parse a finite number from a JSON value, returning None when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_salary(value: Any) -> float:
    """Lenient salary parsing: absent or unparseable values become 0."""
    number = parse_number(value)
    return number if number is not None else 0.0


def new_family_document(name: str, hashed_password: str) -> Dict[str, Any]:
    now = utcnow()
    return {
        "name": name,
        "hashed_password": hashed_password,
        "members": [],
        "total_income": 0.0,
        "total_expenses": 0.0,
        "created_at": now,
        "updated_at": now,
    }


def new_member_document(name: str, is_earning: bool, salary: float) -> Dict[str, Any]:
    return {
        "_id": ObjectId(),
        "name": name,
        "is_earning": is_earning,
        "salary": salary,
        "expenses": [],
        "total_spent": 0.0,
    }


def new_expense_document(description: str, amount: float, category: str, date: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "_id": ObjectId(),
        "description": description,
        "amount": amount,
        "category": category,
        "date": date or utcnow(),
    }


def recalculate_totals(family: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of the family document with every derived total recomputed.

    total_income is the sum of salaries of earning members, each member's
    total_spent is the sum of its expense amounts, and total_expenses is the
    sum of the members' total_spent. The input document is left untouched.

    Args:
        family: Family document as stored in MongoDB.

    Returns:
        Dict[str, Any]: New family document with consistent totals.
    """
    recalculated = copy.deepcopy(family)
    members = recalculated.get("members") or []

    total_income = 0.0
    total_expenses = 0.0
    for member in members:
        if member.get("is_earning"):
            total_income += float(member.get("salary") or 0)
        member["total_spent"] = float(sum(float(expense.get("amount") or 0) for expense in member.get("expenses") or []))
        total_expenses += member["total_spent"]

    recalculated["members"] = members
    recalculated["total_income"] = total_income
    recalculated["total_expenses"] = total_expenses
    return recalculated


def find_member(family: Dict[str, Any], member_id: ObjectId) -> Optional[Dict[str, Any]]:
    for member in family.get("members") or []:
        if member.get("_id") == member_id:
            return member
    return None
