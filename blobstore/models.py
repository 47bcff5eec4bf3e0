from datetime import datetime, timezone

from sqlalchemy import Column, LargeBinary
from sqlmodel import Field, SQLModel


class File(SQLModel, table=True):
    hash: str = Field(primary_key=True, max_length=64)  # sha256 hex of data
    mimetype: str
    created_by: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
