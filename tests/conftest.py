"""
Pytest configuration for the Family Budget API tests.

Settings are read from the environment at import time, so the required
values are set here before any family_budget module is imported. MongoDB is
replaced by an in-memory collection implementing the subset of the Motor
collection API the managers use.
"""

import copy
import os
import re
import tempfile
from types import SimpleNamespace

import pytest

os.environ.setdefault("SECRET_KEY", "test-signing-key-for-family-budget")
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DATABASE", "family-budget-test")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "family_budget_test_logs"))

from bson import ObjectId  # noqa: E402
from pymongo.errors import DuplicateKeyError  # noqa: E402

from family_budget.config import settings  # noqa: E402
from family_budget.database import ConnectionState, DatabaseManager  # noqa: E402
from family_budget.managers.family_manager import FamilyManager, family_manager  # noqa: E402


class InMemoryCollection:
    """Async stand-in for a Motor collection holding family documents."""

    def __init__(self):
        self.documents = []

    def _matches(self, document, query):
        for key, condition in query.items():
            value = document.get(key)
            if isinstance(condition, dict) and "$regex" in condition:
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                if not isinstance(value, str) or not re.search(condition["$regex"], value, flags):
                    return False
            elif value != condition:
                return False
        return True

    def _find(self, query):
        for document in self.documents:
            if self._matches(document, query):
                return document
        return None

    async def find_one(self, query):
        document = self._find(query)
        return copy.deepcopy(document) if document is not None else None

    async def insert_one(self, document):
        if any(existing["name"] == document["name"] for existing in self.documents):
            raise DuplicateKeyError("E11000 duplicate key error collection: families index: name_1")
        stored = copy.deepcopy(document)
        stored.setdefault("_id", ObjectId())
        self.documents.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def update_one(self, query, update):
        document = self._find(query)
        if document is None:
            return SimpleNamespace(matched_count=0, modified_count=0)
        for key, value in update.get("$set", {}).items():
            document[key] = copy.deepcopy(value)
        return SimpleNamespace(matched_count=1, modified_count=1)

    async def delete_one(self, query):
        document = self._find(query)
        if document is None:
            return SimpleNamespace(deleted_count=0)
        self.documents.remove(document)
        return SimpleNamespace(deleted_count=1)

    async def create_index(self, *args, **kwargs):
        return "name_1"


@pytest.fixture
def families_collection():
    return InMemoryCollection()


@pytest.fixture
def test_db_manager(families_collection):
    """A DatabaseManager whose database is a plain dict holding the in-memory collection."""
    manager = DatabaseManager()
    manager.database = {settings.FAMILIES_COLLECTION: families_collection}
    manager.state = ConnectionState.CONNECTED
    return manager


@pytest.fixture
def manager(test_db_manager):
    return FamilyManager(db_manager=test_db_manager)


@pytest.fixture
def patched_family_manager(test_db_manager, monkeypatch):
    """Point the global family manager, used by services and routes, at the in-memory store."""
    monkeypatch.setattr(family_manager, "db_manager", test_db_manager)
    return family_manager
