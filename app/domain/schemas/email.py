from datetime import datetime

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator


def check_address(value: str) -> str:
    """Reject malformed addresses but return `value` untouched.

    Addresses are stored exactly as given, so the normalised form from
    email-validator (lowercased domain, IDNA) is only used for the check.
    """
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(str(e)) from e
    return value


class EmailIn(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _valid_address(cls, v: str) -> str:
        return check_address(v)


class EmailOut(BaseModel):
    """One address on the caller's account."""
    model_config = ConfigDict(from_attributes=True)

    email: str
    is_verified: bool
    is_primary: bool
    created_at: datetime


class ActivationOut(BaseModel):
    email: str
    activated: bool
    result: str = Field(description="ok | not_found | expired | mismatch")


class MessageOut(BaseModel):
    message: str
