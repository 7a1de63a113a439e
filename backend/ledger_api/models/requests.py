from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints

from ledger_api.models.filters import Kind

Label = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


class RegisterRequest(BaseModel):
    name: Label
    email: EmailStr
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserWriteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Label
    email: EmailStr
    password: str = Field(min_length=1)


class TransactionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Kind
    name: Label
    amount: Decimal = Field(max_digits=14, decimal_places=2)


class TransactionUpdateRequest(BaseModel):
    """Kind and owner are fixed at creation; only the label and amount change."""

    model_config = ConfigDict(extra="forbid")

    name: Label | None = None
    amount: Decimal | None = Field(default=None, max_digits=14, decimal_places=2)
