from __future__ import annotations

from typing import Any, Dict

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pymongo import GEOSPHERE
from pymongo.errors import PyMongoError

from .database import db, settings
from .matching.engine import HistoryFallback, MatchingEngine
from .routers import matching
from .stores.donors import USER_COLLECTION, MongoDonorReader
from .stores.history import ACTIVITY_LOG_COLLECTION, MongoResponseHistoryReader
from .stores.requests import REQUEST_COLLECTION, MongoRequestStore
from .utils.notifications import NOTIFICATION_COLLECTION, NotificationService


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def role_room(role: str) -> str:
    return f"role:{role}"


class LiveUpdateHub:
    def __init__(self, sio_server: socketio.AsyncServer) -> None:
        self.sio = sio_server

    async def send_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        await self.sio.emit(event, payload, room=user_room(user_id))

    async def send_to_role(self, role: str, event: str, payload: Dict[str, Any]) -> None:
        await self.sio.emit(event, payload, room=role_room(role))


sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")
app = FastAPI(title="BloodBridge API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

hub = LiveUpdateHub(sio)


def build_engine() -> MatchingEngine:
    return MatchingEngine(
        MongoDonorReader(
            db.get_collection(USER_COLLECTION),
            max_time_ms=settings.matching_search_timeout_ms,
        ),
        MongoResponseHistoryReader(db.get_collection(ACTIVITY_LOG_COLLECTION)),
        MongoRequestStore(db.get_collection(REQUEST_COLLECTION)),
        NotificationService(db.get_collection(NOTIFICATION_COLLECTION), hub),
        history_fallback=HistoryFallback(
            response_rate=settings.history_fallback_response_rate,
            average_response_time=settings.history_fallback_average_response_min,
            completion_rate=settings.history_fallback_completion_rate,
        ),
        candidate_limit=settings.matching_candidate_limit,
        search_timeout_s=settings.matching_search_timeout_ms / 1000,
    )


engine = build_engine()
matching.init_router(engine)

app.include_router(matching.router)


@app.get("/health")
async def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@sio.event
async def connect(sid, environ, auth=None):  # pragma: no cover - socket handshake
    auth = auth or {}
    if auth.get("userId"):
        await sio.enter_room(sid, user_room(auth["userId"]))
    if auth.get("role"):
        await sio.enter_room(sid, role_room(auth["role"]))


@sio.event
async def disconnect(sid):  # pragma: no cover - socket handshake
    logger.debug("Socket {} disconnected", sid)


socket_app = socketio.ASGIApp(sio, other_asgi_app=app)


@app.on_event("startup")
async def ensure_geo_index() -> None:
    users = db.get_collection(USER_COLLECTION)
    try:
        await users.create_index([("location.coordinates", GEOSPHERE)])
    except PyMongoError as exc:  # pragma: no cover - external service
        logger.warning("MongoDB unavailable; skipping geo index creation: {}", exc)
