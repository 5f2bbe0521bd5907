"""Key/value table for settings, sync metadata and cache envelopes."""
from sqlmodel import Field, SQLModel


class MetaEntry(SQLModel, table=True):
    __tablename__ = "meta"

    key: str = Field(primary_key=True)
    value: str
