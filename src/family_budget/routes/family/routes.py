"""
Family budget routes: family detail, members and expenses.

All endpoints require a bearer token and only act on the token's own family.
Every mutation responds with the complete, freshly recalculated family so
clients never have to recompute totals themselves.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from family_budget.managers.family_manager import FamilyError, family_manager
from family_budget.managers.logging_manager import get_logger
from family_budget.routes.auth import ensure_own_family, get_current_family_dep
from family_budget.routes.family.models import (
    AddExpenseRequest,
    AddMemberRequest,
    FamilyResponse,
    UpdateMemberRequest,
)
from family_budget.utils.error_handling import to_http_exception

logger = get_logger(prefix="[Family Routes]")

router = APIRouter(prefix="/family", tags=["family"])

NOT_FOUND_RESPONSES = {
    401: {"description": "Missing, invalid or expired token"},
    404: {"description": "Family or member not found"},
}


@router.get("/{family_id}", response_model=FamilyResponse, responses=NOT_FOUND_RESPONSES)
async def get_family(family_id: str, current_family: Dict[str, Any] = Depends(get_current_family_dep)) -> FamilyResponse:
    """Return the family with all members, expenses and totals."""
    ensure_own_family(family_id, current_family)
    try:
        family = await family_manager.get_family(family_id)
    except FamilyError as e:
        raise to_http_exception(e, operation="get_family") from e
    return FamilyResponse.from_document(family)


@router.post(
    "/{family_id}/members",
    response_model=FamilyResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Member name is required"}, **NOT_FOUND_RESPONSES},
)
async def add_member(
    family_id: str, payload: AddMemberRequest, current_family: Dict[str, Any] = Depends(get_current_family_dep)
) -> FamilyResponse:
    """Add a member; isEarning and salary default to false and 0."""
    ensure_own_family(family_id, current_family)
    try:
        family = await family_manager.add_member(family_id, payload.name, payload.is_earning, payload.salary)
    except FamilyError as e:
        raise to_http_exception(e, operation="add_member") from e
    return FamilyResponse.from_document(family)


@router.put(
    "/{family_id}/members/{member_id}",
    response_model=FamilyResponse,
    responses={400: {"description": "Invalid member data"}, **NOT_FOUND_RESPONSES},
)
async def update_member(
    family_id: str,
    member_id: str,
    payload: UpdateMemberRequest,
    current_family: Dict[str, Any] = Depends(get_current_family_dep),
) -> FamilyResponse:
    ensure_own_family(family_id, current_family)
    try:
        family = await family_manager.update_member(
            family_id, member_id, payload.name, payload.is_earning, payload.salary
        )
    except FamilyError as e:
        raise to_http_exception(e, operation="update_member") from e
    return FamilyResponse.from_document(family)


@router.delete("/{family_id}/members/{member_id}", response_model=FamilyResponse, responses=NOT_FOUND_RESPONSES)
async def delete_member(
    family_id: str, member_id: str, current_family: Dict[str, Any] = Depends(get_current_family_dep)
) -> FamilyResponse:
    """Remove a member together with all of its expenses."""
    ensure_own_family(family_id, current_family)
    try:
        family = await family_manager.delete_member(family_id, member_id)
    except FamilyError as e:
        raise to_http_exception(e, operation="delete_member") from e
    return FamilyResponse.from_document(family)


@router.post(
    "/{family_id}/members/{member_id}/expenses",
    response_model=FamilyResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Missing fields, negative amount or invalid category"}, **NOT_FOUND_RESPONSES},
)
async def add_expense(
    family_id: str,
    member_id: str,
    payload: AddExpenseRequest,
    current_family: Dict[str, Any] = Depends(get_current_family_dep),
) -> FamilyResponse:
    """Record an expense for a member, dated now."""
    ensure_own_family(family_id, current_family)
    try:
        family = await family_manager.add_expense(
            family_id, member_id, payload.description, payload.amount, payload.category
        )
    except FamilyError as e:
        raise to_http_exception(e, operation="add_expense") from e
    return FamilyResponse.from_document(family)
