# tests/helpers.py
from io import BytesIO

from PIL import Image

import simple_social_feed.db as db
from simple_social_feed.auth import create_token


def make_user(name: str) -> dict:
    return db.create_user(name=name, email=f"{name.lower()}@example.com")


def auth_header(user: dict) -> dict:
    return {"Authorization": f"Bearer {create_token(user['id'])}"}


def png_file(filename: str = "img.png", content_type: str = "image/png"):
    img = Image.new("RGB", (32, 32))
    buf = BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return {"image": (filename, buf, content_type)}


def create_post(client, user: dict, title: str = "A title", content: str = "Some content"):
    return client.post(
        "/feed/post",
        data={"title": title, "content": content},
        files=png_file(),
        headers=auth_header(user),
    )
