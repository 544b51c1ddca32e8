"""Pydantic models exchanged with the relational store."""

from pydantic import BaseModel


class StoreState(BaseModel):
    """Identifies the live data of a store at one point in time."""

    database: str
    schema_name: str = "public"
    schema_version: str | None = None

    @property
    def identifier(self) -> str:
        version = self.schema_version or "unversioned"
        return f"{self.database}/{self.schema_name}@{version}"


class TextColumn(BaseModel):
    """A text-bearing column eligible for remapping."""

    table: str
    name: str
    max_length: int | None = None  # None for unbounded types (text)
