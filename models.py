from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


class StarEvent(BaseModel):
    date: datetime
    count: int  # stargazer's user id, not a running total


class Account(BaseModel):
    username: str
    password_hash: str


class Credentials(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginResponse(BaseModel):
    accessToken: str


class CompareRequest(BaseModel):
    repo1: Optional[str] = None
    repo2: Optional[str] = None


class CompareResponse(BaseModel):
    repo1: List[StarEvent]
    repo2: List[StarEvent]
