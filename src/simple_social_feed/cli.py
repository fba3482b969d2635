import os
from pathlib import Path
import uvicorn
from dotenv import load_dotenv

def _load_env_local():
    # src/simple_social_feed/cli.py -> parents[2] == repo root
    repo_root = Path(__file__).resolve().parents[2]
    env_file = repo_root / ".env.local"
    if env_file.exists():
        load_dotenv(env_file, override=False)

def seed():
    _load_env_local()
    from .auth import create_token
    from .db import init_db, create_user
    init_db()
    for name in ("alice", "bob", "carol"):
        user = create_user(name=name.capitalize(), email=f"{name}@example.com")
        token = create_token(user["id"], email=user["email"], expires_hours=24)
        print(f"{user['email']} (id={user['id']}): Bearer {token}")
    print("Seeded 3 users.")

def serve():
    _load_env_local()
    uvicorn.run(
        "simple_social_feed.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )

def start_api():
    _load_env_local()

    src_dir = Path(__file__).resolve().parents[1]  # .../src
    uvicorn.run(
        "simple_social_feed.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        reload_dirs=[str(src_dir)],
    )
