"""Request bodies for the write operations.

Shape and type are checked here; the domain rules (required fields, date
ordering, enums) live in ``validation`` so every violation is reported at once.
Both snake_case and camelCase names are accepted.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_BODY_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PersonCreate(BaseModel):
    model_config = _BODY_CONFIG

    name: Optional[str] = None
    birth_date: Optional[str] = None
    death_date: Optional[str] = None
    image: Optional[str] = None
    gender: Optional[str] = None
    # Older clients send "parent_Id".
    parent_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("parent_id", "parentId", "parent_Id")
    )
    partner_id: Optional[int] = None

    def person_fields(self) -> dict:
        return self.model_dump(include={"name", "birth_date", "death_date", "image", "gender"})


class PersonUpdate(BaseModel):
    model_config = _BODY_CONFIG

    name: Optional[str] = None
    birth_date: Optional[str] = None
    death_date: Optional[str] = None
    image: Optional[str] = None
    gender: Optional[str] = None

    def changes(self) -> dict:
        """Only the keys the client actually sent (explicit nulls included)."""
        return self.model_dump(exclude_unset=True)


class GenderUpdate(BaseModel):
    model_config = _BODY_CONFIG

    gender: Optional[str] = None


class RelationshipCreate(BaseModel):
    model_config = _BODY_CONFIG

    person_id1: int
    person_id2: int
    type: str


class ImageUpload(BaseModel):
    model_config = _BODY_CONFIG

    data: str
    filename: Optional[str] = None
