from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import db
from .auth import get_user_id
from .errors import NotAuthorized, NotFound, ValidationFailed
from .events import Broadcaster, get_broadcaster
from .files import clear_image, is_accepted_image, save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/feed", tags=["feed"])

PER_PAGE = 2


class CreatorOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(alias="_id")
    name: str


class PostOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(alias="_id")
    title: str
    content: str
    image_url: str = Field(alias="imageUrl")
    creator: int | CreatorOut
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class PostsPage(BaseModel):
    message: str
    posts: list[PostOut]
    total_items: int = Field(alias="totalItems")


class PostCreated(BaseModel):
    message: str
    post: PostOut
    creator: CreatorOut


class PostEnvelope(BaseModel):
    message: str
    post: PostOut


class MessageOut(BaseModel):
    message: str


class PostIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=5)
    content: str = Field(min_length=5)


def current_page(raw: str | None) -> int:
    """page-Query: alles Nicht-Numerische und <= 0 zählt als Seite 1."""
    try:
        page = int(raw)
    except (TypeError, ValueError):
        return 1
    return page if page > 0 else 1


def validate_post_input(title: object, content: object) -> PostIn:
    try:
        return PostIn(title=title, content=content)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ValidationFailed(f"Invalid {field}: {first['msg']}", data=exc.errors(include_url=False)) from exc


def _dump(post: dict) -> dict:
    return PostOut.model_validate(post).model_dump(mode="json", by_alias=True)


# ----------------------------
# Posts
# ----------------------------
@router.get("/posts", response_model=PostsPage, summary="List posts, newest first")
def get_posts(page: str | None = None):
    current = current_page(page)
    total_items = db.count_posts()
    offset = (current - 1) * PER_PAGE
    # hinter dem letzten Post gar nicht erst abfragen (riesige Offsets sprengen SQLite)
    posts = db.list_posts(offset=offset, limit=PER_PAGE) if offset < total_items else []
    return {"message": "Posts fetched", "posts": posts, "totalItems": total_items}


@router.post("/post", response_model=PostCreated, status_code=201, summary="Create a post")
async def create_post(
    request: Request,
    user_id: int = Depends(get_user_id),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """
    Flow:
    1) Eingaben prüfen (422), Bild muss dabei sein (422)
    2) Bild speichern, Post anlegen, Post beim User eintragen
    3) 'posts'-Event an alle Clients
    """
    form = await request.form()
    data = validate_post_input(form.get("title"), form.get("content"))

    image = form.get("image")
    if not is_accepted_image(image):
        raise ValidationFailed("Image not provided!")

    user = await run_in_threadpool(db.get_user, user_id)
    if user is None:
        raise NotFound("User not found!")

    image_url = await save_image(image)
    post = await run_in_threadpool(
        db.add_post,
        title=data.title,
        content=data.content,
        image_url=image_url,
        creator_id=user_id,
    )
    # zweiter, unabhängiger Schreibvorgang (keine Transaktion)
    await run_in_threadpool(db.append_user_post, user_id, post["id"])
    logger.info("post %s created by user %s", post["id"], user_id)

    creator = {"id": user["id"], "name": user["name"]}
    await broadcaster.emit("posts", {"action": "create", "post": _dump({**post, "creator": creator})})

    return {"message": "Post created successfully", "post": post, "creator": creator}


@router.get("/post/{post_id}", response_model=PostEnvelope, summary="Get post by ID")
def get_post(post_id: int):
    post = db.get_post(post_id)
    if not post:
        raise NotFound("Post not found!")
    return {"message": "Post fetched", "post": post}


@router.put("/post/{post_id}", response_model=PostEnvelope, summary="Update a post")
async def update_post(
    post_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_user_id),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    form = await request.form()
    data = validate_post_input(form.get("title"), form.get("content"))

    # Neues Bild hat Vorrang vor dem mitgeschickten alten Pfad
    image = form.get("image")
    upload = image if is_accepted_image(image) else None
    kept_path = image if isinstance(image, str) and image else None
    if upload is None and kept_path is None:
        raise ValidationFailed("Image not provided!")

    post = await run_in_threadpool(db.get_post, post_id, populate=True)
    if not post:
        raise NotFound("Post not found!")
    creator = post["creator"]
    creator_id = creator["id"] if isinstance(creator, dict) else creator
    if creator_id != user_id:
        raise NotAuthorized("User not authorized to update!")

    image_url = await save_image(upload) if upload is not None else kept_path
    if image_url != post["image_url"]:
        background_tasks.add_task(clear_image, post["image_url"])

    updated = await run_in_threadpool(
        db.update_post,
        post_id,
        title=data.title,
        content=data.content,
        image_url=image_url,
    )
    if not updated:
        raise NotFound("Post not found!")
    logger.info("post %s updated by user %s", post_id, user_id)

    await broadcaster.emit("posts", {"action": "update", "post": _dump(updated)})

    return {"message": "Post updated", "post": updated}


@router.delete("/post/{post_id}", response_model=MessageOut, summary="Delete a post")
async def delete_post(
    post_id: int,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_user_id),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    post = await run_in_threadpool(db.get_post, post_id)
    if not post:
        raise NotFound("Post not found!")
    if post["creator"] != user_id:
        raise NotAuthorized("User not authorized to delete!")

    background_tasks.add_task(clear_image, post["image_url"])
    await run_in_threadpool(db.delete_post, post_id)
    await run_in_threadpool(db.remove_user_post, user_id, post_id)
    logger.info("post %s deleted by user %s", post_id, user_id)

    await broadcaster.emit("posts", {"action": "delete", "post": post_id})

    return {"message": "Post deleted"}
