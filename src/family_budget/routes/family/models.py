"""
Request and response models for the family budget endpoints.

Requests accept camelCase or snake_case field names. Member flags and
amounts are typed loosely (Any) because the family manager parses them
leniently; strict pydantic types would turn "abc" salaries into schema
errors instead of zero.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddMemberRequest(CamelModel):
    name: Optional[str] = Field(None, description="Member name")
    is_earning: Any = Field(None, description="Whether the member earns a salary")
    salary: Any = Field(None, description="Monthly salary, 0 when absent")


class UpdateMemberRequest(AddMemberRequest):
    pass


class AddExpenseRequest(CamelModel):
    description: Optional[str] = None
    amount: Any = None
    category: Optional[str] = Field(None, description="One of the fixed expense categories")


class ExpenseResponse(CamelModel):
    id: str
    description: str
    amount: float
    category: str
    date: datetime


class MemberResponse(CamelModel):
    id: str
    name: str
    is_earning: bool
    salary: float
    expenses: List[ExpenseResponse]
    total_spent: float


class FamilyResponse(CamelModel):
    """Full family state; the password hash is never part of it."""

    id: str
    name: str
    members: List[MemberResponse]
    total_income: float
    total_expenses: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, family: Dict[str, Any]) -> "FamilyResponse":
        return cls(
            id=str(family["_id"]),
            name=family["name"],
            members=[
                MemberResponse(
                    id=str(member["_id"]),
                    name=member["name"],
                    is_earning=bool(member.get("is_earning")),
                    salary=member.get("salary") or 0,
                    expenses=[
                        ExpenseResponse(
                            id=str(expense["_id"]),
                            description=expense["description"],
                            amount=expense["amount"],
                            category=expense["category"],
                            date=expense["date"],
                        )
                        for expense in member.get("expenses") or []
                    ],
                    total_spent=member.get("total_spent") or 0,
                )
                for member in family.get("members") or []
            ],
            total_income=family.get("total_income") or 0,
            total_expenses=family.get("total_expenses") or 0,
            created_at=family.get("created_at"),
            updated_at=family.get("updated_at"),
        )
