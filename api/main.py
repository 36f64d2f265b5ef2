import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.routers import auth, health, stats
from api.settings import settings

logging.getLogger("inbox_stats").setLevel(logging.INFO)

app = FastAPI(title="Inbox Stats API")

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.ensure_session_secret(),
    same_site="lax",
    https_only=settings.https_only,
    max_age=settings.session_ttl_seconds,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api")
app.include_router(auth.router, prefix="/api/auth")
app.include_router(stats.router, prefix="/api/user/stats")


def run():
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(name)s | %(message)s")
    uvicorn.run("api.main:app", host=settings.host, port=settings.port)
