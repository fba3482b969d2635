from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv, find_dotenv

# Lädt automatisch die Repo-Root .env, überschreibt vorhandene Variablen NICHT
load_dotenv(find_dotenv())

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from . import files
from .db import init_db
from .errors import register_error_handlers
from .events import hub
from .feed import router as feed_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Simple Social Feed",
    description="Posts feed REST API with image uploads and realtime updates.",
    lifespan=lifespan,
)

# Bilder statisch ausliefern: imageUrl "images/foo.png" -> /images/foo.png
app.mount(
    f"/{files.IMAGES_SUBDIR}",
    StaticFiles(directory=str(files.images_dir()), check_dir=False),
    name="images",
)

origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://127.0.0.1:5500,http://localhost:5500,http://localhost:3000").split(",")
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(feed_router)


@app.websocket("/socket")
async def socket(websocket: WebSocket):
    """Clients bekommen hier alle 'posts'-Events (create/update/delete)."""
    await hub.connect(websocket)
    try:
        while True:
            # Clients senden nichts Relevantes, wir warten nur auf das Schließen
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
