"""Authentication package initialization."""

from family_budget.routes.auth.dependencies import ensure_own_family, get_current_family_dep
from family_budget.routes.auth.routes import router
