from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, Text
from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, Any, List, Literal, Optional, Union
from datetime import datetime
from enum import Enum
import uuid

from ..utils.dates import utcnow, as_utc

class AttachmentKind(str, Enum):
    URL = "url"
    EMBEDDED = "embedded"

class UrlAttachment(BaseModel):
    kind: Literal["url"] = "url"
    data: str

class EmbeddedAttachment(BaseModel):
    kind: Literal["embedded"] = "embedded"
    data: str
    filename: Optional[str] = None

Attachment = Annotated[Union[UrlAttachment, EmbeddedAttachment], PydanticField(discriminator="kind")]


class Letter(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True, max_length=32)
    # Unique among active rows only; enforced by the letter store
    phone: str = Field(index=True, max_length=20, nullable=False)
    title: str = Field(max_length=200, nullable=False)
    context: str = Field(sa_column=Column(Text, nullable=False))
    extra_note: str = Field(default="", sa_column=Column(Text, nullable=False))
    attachments: List[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    logged_at: Optional[datetime] = Field(default=None, nullable=True)
    deleted: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LetterView(CamelModel):
    id: str
    phone: str
    title: str
    context: str
    extra_note: str
    attachments: List[Attachment]
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

class AdminLetterView(LetterView):
    logged_at: Optional[datetime] = None

    @field_validator("logged_at")
    @classmethod
    def _utc_logged(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

class LetterPreview(CamelModel):
    id: str
    title: str
    preview: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


# Attachments arrive raw so legacy shapes can be resolved by the store
class LetterCreate(CamelModel):
    phone: Optional[str] = None
    title: Optional[str] = None
    context: Optional[str] = None
    extra_note: Optional[str] = None
    attachments: Optional[List[Any]] = None

class LetterUpdate(LetterCreate):
    pass
