"""
auth/validation.py -- Input contracts for signup and login.

Pydantic v2 models validate raw form/JSON values before the service touches
either store. A pydantic failure is translated into auth.errors.ValidationError
so callers deal with one error taxonomy.

Contract:
  username  alphanumeric, 1..20 chars
  email     syntactically valid address (EmailStr, email-validator)
  password  non-empty, max 20 chars, and within bcrypt's 72-byte limit

Login only checks email syntax and presence of a password: tightening the
password rules there would let an attacker distinguish "rejected by
validation" from "wrong password".
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from auth.errors import ValidationError
from auth.passwords import BCRYPT_MAX_BYTES

USERNAME_PATTERN = r"^[A-Za-z0-9]+$"
USERNAME_MAX = 20
PASSWORD_MAX = 20


class SignupInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str = Field(min_length=1, max_length=USERNAME_MAX, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX)

    @field_validator("password")
    @classmethod
    def fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise ValueError("Password is too long. Use fewer or simpler characters.")
        return value


class LoginInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: EmailStr
    password: str = Field(min_length=1)


def _messages(exc: PydanticValidationError) -> list[str]:
    # Never echo the submitted value back: it may be a password.
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]


def parse_signup(username, email, password) -> SignupInput:
    """Validate signup fields. Raises auth.errors.ValidationError."""
    try:
        return SignupInput(username=username, email=email, password=password)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid signup details.", errors=_messages(exc)) from exc


def parse_login(email, password) -> LoginInput:
    """Validate login fields. Raises auth.errors.ValidationError."""
    try:
        return LoginInput(email=email, password=password)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid login details.", errors=_messages(exc)) from exc
