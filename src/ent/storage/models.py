"""ent bucket metadata models.

Buckets are declared by policy documents and loaded once by a provider.
All models are frozen: the provider owns the instances and callers only
ever see read-only views.
"""

from __future__ import annotations

from email.utils import formataddr, parseaddr
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EmailAddress(BaseModel):
    """A single mail address with an optional display name.

    Serialized with the ``Name``/``Address`` field names used by existing
    policy documents; the lower-case names are accepted on input too.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: Annotated[str, Field(default="", alias="Name")]
    address: Annotated[str, Field(alias="Address")]

    @classmethod
    def parse(cls, value: str) -> EmailAddress:
        """Parse an RFC 5322 address such as ``"bit team <bit@bucket.io>"``."""
        name, address = parseaddr(value)
        if not address or "@" not in address:
            raise ValueError(f"invalid mail address: {value!r}")
        return cls(name=name, address=address)

    def __str__(self) -> str:
        return formataddr((self.name, self.address))


class Owner(BaseModel):
    """Identity information of a bucket owner.

    Placeholder for future quota and permission fields.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    email: EmailAddress

    @field_validator("email", mode="before")
    @classmethod
    def _coerce_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return EmailAddress.parse(value)
        return value


class Bucket(BaseModel):
    """A named partition of the object namespace with exactly one owner."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: Annotated[str, Field(min_length=1)]
    owner: Owner

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError(f"bucket name must be a single path segment: {value!r}")
        return value

    def to_dict(self) -> dict[str, Any]:
        """Convert the bucket to its policy/JSON representation."""
        return self.model_dump(by_alias=True)


def new_bucket(name: str, email: str) -> Bucket:
    """Build a bucket from a name and an RFC 5322 owner address."""
    return Bucket(name=name, owner=Owner(email=EmailAddress.parse(email)))
