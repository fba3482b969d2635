from __future__ import annotations

from datetime import datetime
from sqlalchemy import Column, DateTime, JSON
from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)

    email: str = Field(index=True, unique=True)
    name: str
    status: str = "I am new!"

    # Reihenfolge = Reihenfolge der Erstellung, wird explizit gepflegt
    posts: list[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))


class Post(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)

    title: str
    content: str
    image_url: str

    creator_id: int = Field(foreign_key="user.id", index=True)

    created_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), index=True))
    updated_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
