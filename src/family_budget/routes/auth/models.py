"""Request and response models for the authentication endpoints."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RegisterRequest(BaseModel):
    """Registration body; lengths are checked by the registration service so errors share one format."""

    name: Optional[str] = Field(None, description="Family name, at least 2 characters")
    password: Optional[str] = Field(None, description="Family password, at least 6 characters")


class LoginRequest(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None


class FamilySummary(BaseModel):
    id: str
    name: str


class AuthResponse(BaseModel):
    """Token plus the identity it is bound to."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    token: str
    family: FamilySummary
