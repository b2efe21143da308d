"""
Family Manager for the family aggregate: registration storage, members and expenses.

Every mutating operation follows the same unit of work:

    load the family document -> mutate it in memory -> recalculate_totals()
    -> write members/totals/updated_at back with a single update_one

The write only `$set`s the aggregate fields, so the stored password hash is
written once at creation and never touched (or re-hashed) by later mutations.
Concurrent mutations of the same family are not serialized; the last write
wins at the document level.

Logging:
    - Uses the centralized logging manager with a "[FamilyManager]" prefix
    - Database calls are timed through db_manager.log_query_* helpers
    - Driver failures are logged with context and re-raised as PersistenceError
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import math
import re

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError, PyMongoError

from family_budget.config import settings
from family_budget.database import db_manager
from family_budget.managers.logging_manager import get_logger
from family_budget.models.family_models import (
    EXPENSE_CATEGORIES,
    coerce_bool,
    coerce_salary,
    find_member,
    new_expense_document,
    new_family_document,
    new_member_document,
    parse_number,
    recalculate_totals,
    utcnow,
)
from family_budget.utils.logging_utils import log_error_with_context, log_performance

logger = get_logger(prefix="[FamilyManager]")


class FamilyError(Exception):
    """Base family budget exception with error code and context."""

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "FAMILY_ERROR"
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)


class ValidationError(FamilyError):
    """Input validation failed with field-specific details."""

    def __init__(self, message: str, field: str = None, value: Any = None, constraint: str = None):
        super().__init__(
            message,
            "VALIDATION_ERROR",
            {"field": field, "value": str(value) if value is not None else None, "constraint": constraint},
        )


class DuplicateFamilyName(FamilyError):
    """A family with exactly this name already exists."""

    def __init__(self, message: str, name: str = None):
        super().__init__(message, "DUPLICATE_NAME", {"name": name})


class InvalidCredentials(FamilyError):
    """Login failed; unknown family and wrong password are deliberately indistinguishable."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message, "INVALID_CREDENTIALS")


class AuthenticationFailure(FamilyError):
    """Bearer token missing, invalid, expired, or bound to a family that no longer exists."""

    def __init__(self, message: str = "Authentication failed", reason: str = None):
        super().__init__(message, "AUTHENTICATION_FAILED", {"reason": reason})


class FamilyNotFound(FamilyError):
    """Family does not exist or is not accessible."""

    def __init__(self, message: str = "Family not found", family_id: str = None):
        super().__init__(message, "FAMILY_NOT_FOUND", {"family_id": family_id})


class MemberNotFound(FamilyError):
    """Member does not exist in the family."""

    def __init__(self, message: str = "Member not found", family_id: str = None, member_id: str = None):
        super().__init__(message, "MEMBER_NOT_FOUND", {"family_id": family_id, "member_id": member_id})


class PersistenceError(FamilyError):
    """The document store failed to read or write."""

    def __init__(self, message: str, operation: str = None):
        super().__init__(message, "PERSISTENCE_ERROR", {"operation": operation})


class TokenIssuanceError(FamilyError):
    """Signing a session token failed."""

    def __init__(self, message: str, rollback_successful: bool = None):
        super().__init__(message, "TOKEN_ISSUANCE_ERROR", {"rollback_successful": rollback_successful})


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an ObjectId from a path parameter, returning None for malformed ids."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def _clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class FamilyManager:
    """
    Family aggregate operations on the families collection.

    The database manager is injectable so tests can provide an in-memory
    collection; by default the global db_manager is used.
    """

    def __init__(self, db_manager=None, collection_name: str = None) -> None:
        self.db_manager = db_manager or globals()["db_manager"]
        self.collection_name = collection_name or settings.FAMILIES_COLLECTION
        self.logger = logger

    def _collection(self):
        return self.db_manager.get_collection(self.collection_name)

    async def _find_one(self, query: Dict[str, Any], operation: str) -> Optional[Dict[str, Any]]:
        start_time = self.db_manager.log_query_start(self.collection_name, operation, query)
        try:
            document = await self._collection().find_one(query)
        except PyMongoError as e:
            self.db_manager.log_query_error(self.collection_name, operation, start_time, e, query)
            log_error_with_context(e, {"query": str(query)}, operation=operation)
            raise PersistenceError("Failed to read family data", operation=operation) from e
        self.db_manager.log_query_success(self.collection_name, operation, start_time, 1 if document else 0)
        return document

    async def find_family(self, family_id: Any) -> Optional[Dict[str, Any]]:
        """Return the family document or None when it does not exist."""
        object_id = to_object_id(family_id)
        if object_id is None:
            return None
        return await self._find_one({"_id": object_id}, "find_family")

    async def _get_family_by_id(self, family_id: Any) -> Dict[str, Any]:
        family = await self.find_family(family_id)
        if family is None:
            self.logger.info("Family %s not found", family_id)
            raise FamilyNotFound("Family not found", family_id=str(family_id))
        return family

    def _get_member(self, family: Dict[str, Any], member_id: Any) -> Dict[str, Any]:
        object_id = to_object_id(member_id)
        member = find_member(family, object_id) if object_id is not None else None
        if member is None:
            self.logger.info("Member %s not found in family %s", member_id, family.get("_id"))
            raise MemberNotFound("Member not found", family_id=str(family.get("_id")), member_id=str(member_id))
        return member

    async def find_family_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        """Case-insensitive exact-name lookup used by login; the first match wins."""
        query = {"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}
        return await self._find_one(query, "find_family_by_name")

    async def _save(self, family: Dict[str, Any], operation: str) -> Dict[str, Any]:
        """Recalculate all totals and persist the aggregate fields of the family."""
        recalculated = recalculate_totals(family)
        totals = [recalculated["total_income"], recalculated["total_expenses"]]
        totals.extend(member["total_spent"] for member in recalculated["members"])
        if not all(math.isfinite(total) for total in totals):
            self.logger.info("Rejected %s for family %s: totals out of range", operation, recalculated.get("_id"))
            raise ValidationError("Totals exceed the supported numeric range", constraint="finite_totals")
        recalculated["updated_at"] = utcnow()
        query = {"_id": recalculated["_id"]}
        update = {
            "$set": {
                "members": recalculated["members"],
                "total_income": recalculated["total_income"],
                "total_expenses": recalculated["total_expenses"],
                "updated_at": recalculated["updated_at"],
            }
        }

        start_time = self.db_manager.log_query_start(self.collection_name, operation, query)
        try:
            result = await self._collection().update_one(query, update)
        except PyMongoError as e:
            self.db_manager.log_query_error(self.collection_name, operation, start_time, e, query)
            log_error_with_context(e, {"family_id": str(recalculated["_id"])}, operation=operation)
            raise PersistenceError("Failed to save family data", operation=operation) from e
        self.db_manager.log_query_success(self.collection_name, operation, start_time, result.matched_count)

        if result.matched_count == 0:
            raise FamilyNotFound("Family not found", family_id=str(recalculated["_id"]))

        self.logger.debug(
            "Totals calculated for family %s: income=%s expenses=%s members=%d",
            recalculated["_id"],
            recalculated["total_income"],
            recalculated["total_expenses"],
            len(recalculated["members"]),
        )
        return recalculated

    @log_performance("create_family")
    async def create_family(self, name: str, hashed_password: str) -> Dict[str, Any]:
        """
        Insert a new family with no members and zero totals.

        Args:
            name: Trimmed, already validated family name.
            hashed_password: bcrypt hash of the family password.

        Returns:
            Dict[str, Any]: The inserted family document including its _id.

        Raises:
            DuplicateFamilyName: If a family with exactly this name exists.
            PersistenceError: If the insert fails.
        """
        existing = await self._find_one({"name": name}, "find_family_by_exact_name")
        if existing is not None:
            self.logger.info("Family name already exists: %s", name)
            raise DuplicateFamilyName("Family name already exists", name=name)

        family = recalculate_totals(new_family_document(name, hashed_password))
        start_time = self.db_manager.log_query_start(self.collection_name, "insert_family", {"name": name})
        try:
            result = await self._collection().insert_one(family)
        except DuplicateKeyError as e:
            # Lost a race against a concurrent registration of the same name
            self.db_manager.log_query_error(self.collection_name, "insert_family", start_time, e)
            raise DuplicateFamilyName("Family name already exists", name=name) from e
        except PyMongoError as e:
            self.db_manager.log_query_error(self.collection_name, "insert_family", start_time, e)
            log_error_with_context(e, {"name": name}, operation="create_family")
            raise PersistenceError("Error saving family", operation="create_family") from e
        self.db_manager.log_query_success(self.collection_name, "insert_family", start_time, 1)

        family["_id"] = result.inserted_id
        self.logger.info("Family saved successfully: id=%s name=%s", family["_id"], name)
        return family

    async def delete_family(self, family_id: Any) -> bool:
        """Remove a family document; used to roll back a failed registration."""
        object_id = to_object_id(family_id)
        if object_id is None:
            return False
        start_time = self.db_manager.log_query_start(self.collection_name, "delete_family", {"_id": object_id})
        try:
            result = await self._collection().delete_one({"_id": object_id})
        except PyMongoError as e:
            self.db_manager.log_query_error(self.collection_name, "delete_family", start_time, e)
            log_error_with_context(e, {"family_id": str(object_id)}, operation="delete_family")
            raise PersistenceError("Failed to delete family", operation="delete_family") from e
        self.db_manager.log_query_success(self.collection_name, "delete_family", start_time, result.deleted_count)
        return result.deleted_count == 1

    async def get_family(self, family_id: Any) -> Dict[str, Any]:
        """Return the current family state including derived totals."""
        return await self._get_family_by_id(family_id)

    @log_performance("add_member")
    async def add_member(self, family_id: Any, name: Any, is_earning: Any = None, salary: Any = None) -> Dict[str, Any]:
        """
        Append a member to the family.

        is_earning and salary are parsed leniently: absent or unparseable
        values become False and 0. A negative salary is rejected.
        """
        family = await self._get_family_by_id(family_id)

        member_name = _clean_text(name)
        if not member_name:
            raise ValidationError("Member name is required", field="name")

        member_salary = coerce_salary(salary)
        if member_salary < 0:
            raise ValidationError("Salary cannot be negative", field="salary", value=salary, constraint="min:0")

        member = new_member_document(member_name, coerce_bool(is_earning), member_salary)
        family["members"].append(member)

        saved = await self._save(family, "add_member")
        self.logger.info("New member added: family=%s member=%s", saved["_id"], member["_id"])
        return saved

    @log_performance("update_member")
    async def update_member(
        self, family_id: Any, member_id: Any, name: Any, is_earning: Any = None, salary: Any = None
    ) -> Dict[str, Any]:
        """Overwrite a member's name, earning flag and salary."""
        family = await self._get_family_by_id(family_id)
        member = self._get_member(family, member_id)

        member_name = _clean_text(name)
        if not member_name:
            raise ValidationError("Member name is required", field="name")

        member_salary = coerce_salary(salary)
        if member_salary < 0:
            raise ValidationError("Salary cannot be negative", field="salary", value=salary, constraint="min:0")

        member["name"] = member_name
        member["is_earning"] = coerce_bool(is_earning)
        member["salary"] = member_salary

        saved = await self._save(family, "update_member")
        self.logger.info("Member updated: family=%s member=%s", saved["_id"], member["_id"])
        return saved

    @log_performance("delete_member")
    async def delete_member(self, family_id: Any, member_id: Any) -> Dict[str, Any]:
        """Remove a member together with its expenses and recompute totals from the remaining members."""
        family = await self._get_family_by_id(family_id)
        member = self._get_member(family, member_id)

        family["members"] = [m for m in family["members"] if m.get("_id") != member["_id"]]

        saved = await self._save(family, "delete_member")
        self.logger.info(
            "Member deleted: family=%s member=%s name=%s total_spent=%s remaining=%d income=%s expenses=%s",
            saved["_id"],
            member["_id"],
            member.get("name"),
            member.get("total_spent"),
            len(saved["members"]),
            saved["total_income"],
            saved["total_expenses"],
        )
        return saved

    @log_performance("add_expense")
    async def add_expense(
        self, family_id: Any, member_id: Any, description: Any, amount: Any, category: Any
    ) -> Dict[str, Any]:
        """
        Append an expense dated now to a member.

        The member's total_spent is not bumped here; it is recomputed with
        every other total when the family is saved.
        """
        family = await self._get_family_by_id(family_id)
        member = self._get_member(family, member_id)

        expense_description = _clean_text(description)
        if not expense_description or amount in (None, "", 0) or not category:
            raise ValidationError("Description, amount, and category are required")

        expense_amount = parse_number(amount)
        if expense_amount is None:
            raise ValidationError("Amount must be a number", field="amount", value=amount)
        if expense_amount < 0:
            raise ValidationError("Amount cannot be negative", field="amount", value=amount, constraint="min:0")
        if expense_amount == 0:
            raise ValidationError("Description, amount, and category are required", field="amount", value=amount)
        if category not in EXPENSE_CATEGORIES:
            raise ValidationError(
                f"Invalid category. Valid categories: {', '.join(EXPENSE_CATEGORIES)}",
                field="category",
                value=category,
            )

        expense = new_expense_document(expense_description, expense_amount, category)
        member["expenses"].append(expense)

        saved = await self._save(family, "add_expense")
        self.logger.info(
            "New expense added: family=%s member=%s amount=%s category=%s",
            saved["_id"],
            member["_id"],
            expense_amount,
            category,
        )
        return saved


# Global family manager instance
family_manager = FamilyManager()
