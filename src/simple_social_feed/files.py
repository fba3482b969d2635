from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

from starlette.datastructures import UploadFile

logger = logging.getLogger(__name__)

# Basisverzeichnis, gegen das gespeicherte imageUrl-Pfade aufgelöst werden.
# Default: <repo>/  -> Bilder landen in <repo>/images
MEDIA_ROOT = Path(
    os.getenv("MEDIA_ROOT", Path(__file__).resolve().parents[2])
).resolve()

IMAGES_SUBDIR = "images"

ALLOWED_IMAGE_TYPES = {"image/png", "image/jpg", "image/jpeg"}


def images_dir() -> Path:
    return MEDIA_ROOT / IMAGES_SUBDIR


def is_accepted_image(upload: object) -> bool:
    """Nur PNG/JPEG-Uploads zählen als 'Bild vorhanden'."""
    if not isinstance(upload, UploadFile):
        return False
    if not upload.filename:
        return False
    return (upload.content_type or "").lower() in ALLOWED_IMAGE_TYPES


async def save_image(upload: UploadFile) -> str:
    """
    Upload speichern und den relativen Pfad zurückgeben, der
    unverändert als imageUrl am Post landet (z.B. images/1700000000_ab12cd.png).
    """
    base_dir = images_dir()
    base_dir.mkdir(parents=True, exist_ok=True)

    suffix = Path(upload.filename or "").suffix.lower() or ".png"
    timestamp = int(datetime.now(timezone.utc).timestamp())
    filename = f"{timestamp}_{uuid.uuid4().hex[:12]}{suffix}"

    content = await upload.read()
    with open(base_dir / filename, "wb") as f:
        f.write(content)

    return f"{IMAGES_SUBDIR}/{filename}"


def clear_image(image_path: str) -> None:
    """
    Datei zu einem gespeicherten imageUrl löschen. Fehler werden nur geloggt,
    der Aufrufer bekommt davon nichts mit.
    """
    root = MEDIA_ROOT.resolve()
    target = (root / image_path).resolve()
    if not target.is_relative_to(root):
        logger.warning("Refusing to delete %s outside of %s", image_path, root)
        return

    try:
        target.unlink()
    except OSError as exc:
        logger.warning("Could not delete image %s: %s", target, exc)
    else:
        logger.info("Deleted image %s", target)
