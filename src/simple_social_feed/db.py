from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import func
from sqlmodel import SQLModel, create_engine, Session, select

from .models import Post, User


ENGINE = None  # wird lazy erzeugt

DEFAULT_DB_PATH = Path(__file__).resolve().parents[2] / "social.db"


def _create_engine():
    """
    Engine wird lazy gebaut, damit pytest collection nicht crasht.
    Ohne DATABASE_URL landet alles in <repo>/social.db.
    """
    url = os.getenv("DATABASE_URL") or f"sqlite:///{DEFAULT_DB_PATH}"
    if url.startswith("sqlite"):
        # Handler laufen im Threadpool
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(url, echo=False, pool_pre_ping=True)


def get_engine():
    global ENGINE
    if ENGINE is None:
        ENGINE = _create_engine()
    return ENGINE


def reset_engine_for_tests():
    """Optional: für Tests/Reloads, falls sich DATABASE_URL ändert."""
    global ENGINE
    ENGINE = None


def init_db():
    SQLModel.metadata.create_all(get_engine())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite liefert Zeitstempel ohne Offset zurück, gespeichert wird immer UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _post_dict(post: Post, creator: User | None = None) -> dict:
    data = post.model_dump()
    data["created_at"] = _as_utc(post.created_at)
    data["updated_at"] = _as_utc(post.updated_at)
    if creator is not None:
        data["creator"] = {"id": creator.id, "name": creator.name}
    else:
        data["creator"] = post.creator_id
    return data


# ---------------------------
# User
# ---------------------------

def create_user(name: str, email: str, status: str | None = None) -> dict:
    with Session(get_engine()) as session:
        user = User(name=name, email=email, posts=[])
        if status:
            user.status = status
        session.add(user)
        session.commit()
        session.refresh(user)
        return user.model_dump()


def get_user(user_id: int) -> dict | None:
    with Session(get_engine()) as session:
        user = session.get(User, user_id)
        return user.model_dump() if user else None


def append_user_post(user_id: int, post_id: int) -> dict | None:
    with Session(get_engine()) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        # neue Liste zuweisen, sonst erkennt SQLAlchemy die Änderung am JSON nicht
        user.posts = [*user.posts, post_id]
        session.add(user)
        session.commit()
        session.refresh(user)
        return user.model_dump()


def remove_user_post(user_id: int, post_id: int) -> dict | None:
    with Session(get_engine()) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        user.posts = [p for p in user.posts if p != post_id]
        session.add(user)
        session.commit()
        session.refresh(user)
        return user.model_dump()


# ---------------------------
# Post
# ---------------------------

def count_posts() -> int:
    with Session(get_engine()) as session:
        return session.exec(select(func.count()).select_from(Post)).one()


def list_posts(offset: int, limit: int) -> list[dict]:
    """Neueste zuerst, creator mit Namen aufgelöst."""
    with Session(get_engine()) as session:
        stmt = (
            select(Post, User)
            .join(User, Post.creator_id == User.id, isouter=True)
            .order_by(Post.created_at.desc(), Post.id.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = session.exec(stmt).all()
        return [_post_dict(post, creator) for post, creator in rows]


def get_post(post_id: int, populate: bool = False) -> dict | None:
    with Session(get_engine()) as session:
        post = session.get(Post, post_id)
        if post is None:
            return None
        creator = session.get(User, post.creator_id) if populate else None
        return _post_dict(post, creator)


def add_post(title: str, content: str, image_url: str, creator_id: int) -> dict:
    with Session(get_engine()) as session:
        now = _now()
        post = Post(
            title=title,
            content=content,
            image_url=image_url,
            creator_id=creator_id,
            created_at=now,
            updated_at=now,
        )
        session.add(post)
        session.commit()
        session.refresh(post)
        return _post_dict(post)


def update_post(post_id: int, title: str, content: str, image_url: str) -> dict | None:
    with Session(get_engine()) as session:
        post = session.get(Post, post_id)
        if post is None:
            return None
        post.title = title
        post.content = content
        post.image_url = image_url
        post.updated_at = _now()
        session.add(post)
        session.commit()
        session.refresh(post)
        return _post_dict(post, session.get(User, post.creator_id))


def delete_post(post_id: int) -> bool:
    with Session(get_engine()) as session:
        post = session.get(Post, post_id)
        if post is None:
            return False
        session.delete(post)
        session.commit()
        return True
