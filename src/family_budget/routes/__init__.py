"""Routes package initialization."""

from family_budget.routes.auth import router as auth_router
from family_budget.routes.family.routes import router as family_router
from family_budget.routes.main import router as main_router
