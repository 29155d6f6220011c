"""Copywriting master persona documents."""

from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, JSON, Text
from sqlmodel import Field, SQLModel


class MasterDocument(SQLModel, table=True):
    """Read-only reference document describing one copywriting master."""

    __tablename__ = "madison_masters"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    master_name: str = Field(max_length=100, index=True, unique=True)
    squad: str = Field(max_length=50, index=True)
    full_content: str = Field(sa_column=Column(Text))
    summary: Optional[str] = None
    forbidden_language: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    example_output: Optional[str] = Field(default=None, sa_column=Column(Text))
