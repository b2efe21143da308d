"""Tests for password hashing, session tokens, registration and login."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from bson import ObjectId
from jose import JWTError, jwt
import pytest

from family_budget.config import settings
from family_budget.managers.family_manager import (
    AuthenticationFailure,
    DuplicateFamilyName,
    InvalidCredentials,
    TokenIssuanceError,
    ValidationError,
)
from family_budget.routes.auth.services.auth.login import get_current_family, login_family
from family_budget.routes.auth.services.auth.password import hash_password, verify_password
from family_budget.routes.auth.services.auth.registration import register_family
from family_budget.routes.auth.services.security.tokens import create_access_token, decode_access_token


def _encode(claims, secret=None):
    return jwt.encode(claims, secret or settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("s3cret!")
        assert hashed != "s3cret!"
        assert hashed.startswith("$2")
        assert verify_password("s3cret!", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_hashes_are_salted(self):
        assert hash_password("s3cret!") != hash_password("s3cret!")

    def test_malformed_hash_never_matches(self):
        assert verify_password("s3cret!", "not-a-bcrypt-hash") is False
        assert verify_password("s3cret!", "") is False
        assert verify_password("", hash_password("s3cret!")) is False

    def test_long_passwords(self):
        password = "x" * 100
        assert verify_password(password, hash_password(password)) is True


class TestTokens:
    def test_round_trip(self):
        family_id = str(ObjectId())
        payload = decode_access_token(create_access_token(family_id))
        assert payload["sub"] == family_id
        assert payload["type"] == "access"
        assert payload["exp"] - payload["iat"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    def test_expired_token(self):
        now = datetime.now(timezone.utc)
        token = _encode({"sub": str(ObjectId()), "type": "access", "iat": now - timedelta(days=2), "exp": now - timedelta(days=1)})
        with pytest.raises(AuthenticationFailure) as exc_info:
            decode_access_token(token)
        assert exc_info.value.context["reason"] == "expired"

    def test_foreign_signature(self):
        token = _encode(
            {"sub": str(ObjectId()), "type": "access", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            secret="some-other-signing-key",
        )
        with pytest.raises(AuthenticationFailure):
            decode_access_token(token)

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    def test_malformed_tokens(self, token):
        with pytest.raises(AuthenticationFailure):
            decode_access_token(token)

    def test_wrong_type_or_missing_subject(self):
        expires = datetime.now(timezone.utc) + timedelta(hours=1)
        with pytest.raises(AuthenticationFailure):
            decode_access_token(_encode({"sub": str(ObjectId()), "type": "refresh", "exp": expires}))
        with pytest.raises(AuthenticationFailure):
            decode_access_token(_encode({"type": "access", "exp": expires}))

    def test_signing_failure(self):
        with patch(
            "family_budget.routes.auth.services.security.tokens.jwt.encode", side_effect=JWTError("signing failed")
        ):
            with pytest.raises(TokenIssuanceError):
                create_access_token(str(ObjectId()))


@pytest.mark.usefixtures("patched_family_manager")
class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_returns_family_and_token(self, families_collection):
        family, token = await register_family("  Smith  ", "secret1")
        assert family["name"] == "Smith"
        assert decode_access_token(token)["sub"] == str(family["_id"])

        stored = families_collection.documents[0]
        assert stored["hashed_password"] != "secret1"
        assert verify_password("secret1", stored["hashed_password"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name,password,message",
        [
            ("", "secret1", "Family name and password are required"),
            ("Smith", "", "Family name and password are required"),
            (None, None, "Family name and password are required"),
            (" S ", "secret1", "Family name must be at least 2 characters long"),
            ("Smith", "12345", "Password must be at least 6 characters long"),
        ],
    )
    async def test_register_validation(self, families_collection, name, password, message):
        with pytest.raises(ValidationError) as exc_info:
            await register_family(name, password)
        assert exc_info.value.message == message
        assert families_collection.documents == []

    @pytest.mark.asyncio
    async def test_register_duplicate(self):
        await register_family("Smith", "secret1")
        with pytest.raises(DuplicateFamilyName):
            await register_family("Smith", "another1")

    @pytest.mark.asyncio
    async def test_token_failure_rolls_back_registration(self, families_collection):
        with patch(
            "family_budget.routes.auth.services.auth.registration.create_access_token",
            side_effect=TokenIssuanceError("signing failed"),
        ):
            with pytest.raises(TokenIssuanceError) as exc_info:
                await register_family("Smith", "secret1")
        assert exc_info.value.context["rollback_successful"] is True
        assert families_collection.documents == []


@pytest.mark.usefixtures("patched_family_manager")
class TestLogin:
    @pytest.mark.asyncio
    async def test_login_is_case_insensitive(self):
        registered, _ = await register_family("Smith", "secret1")
        family, token = await login_family("SMITH", "secret1")
        assert family["_id"] == registered["_id"]
        assert decode_access_token(token)["sub"] == str(registered["_id"])

    @pytest.mark.asyncio
    async def test_case_variants_resolve_to_first_registered(self, patched_family_manager):
        first, _ = await register_family("Smith", "secret1")
        second, _ = await register_family("smith", "secret2")

        found = await patched_family_manager.find_family_by_name("SMITH")
        assert found["_id"] in (first["_id"], second["_id"])

        family, _ = await login_family("smith", "secret1")
        assert family["_id"] == first["_id"]
        with pytest.raises(InvalidCredentials):
            await login_family("smith", "secret2")

    @pytest.mark.asyncio
    async def test_unknown_family_and_wrong_password_look_the_same(self):
        await register_family("Smith", "secret1")
        with pytest.raises(InvalidCredentials) as unknown:
            await login_family("Jones", "secret1")
        with pytest.raises(InvalidCredentials) as wrong:
            await login_family("Smith", "wrong-password")
        assert unknown.value.message == wrong.value.message == "Invalid credentials"
        assert unknown.value.error_code == wrong.value.error_code

    @pytest.mark.asyncio
    async def test_login_requires_both_fields(self):
        with pytest.raises(ValidationError):
            await login_family("Smith", "")
        with pytest.raises(ValidationError):
            await login_family(None, "secret1")

    @pytest.mark.asyncio
    async def test_get_current_family(self):
        registered, token = await register_family("Smith", "secret1")
        family = await get_current_family(token)
        assert family["_id"] == registered["_id"]

    @pytest.mark.asyncio
    async def test_token_of_removed_family_is_rejected(self, families_collection):
        _, token = await register_family("Smith", "secret1")
        families_collection.documents.clear()
        with pytest.raises(AuthenticationFailure):
            await get_current_family(token)
