from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from market.core.security import MAX_PASSWORD_BYTES, password_too_long


def _check_password_bytes(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class SignupForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=1, max_length=80)
    email: EmailStr
    password: str = Field(..., min_length=1)

    _password_bytes = field_validator("password")(_check_password_bytes)


class LoginForm(BaseModel):
    email: str = Field(..., min_length=1)
    # no byte cap: an over-long password simply fails verification
    password: str = Field(..., min_length=1)


class ForgotForm(BaseModel):
    email: str = Field(..., min_length=1)


class ResetForm(BaseModel):
    password: str = Field(..., min_length=1)

    _password_bytes = field_validator("password")(_check_password_bytes)
