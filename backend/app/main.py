"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import ops, quests
from app.api.errors import install_error_handlers
from app.domain.quests.sockets import QuestsNamespace, set_namespace as set_quests_namespace
from app.infra import postgres
from app.maintenance.scheduler import JobScheduler, build_maintenance_scheduler
from app.obs import init as obs_init
from app.settings import settings

DEV_ORIGINS = [
	"http://localhost:3000",
	"http://127.0.0.1:3000",
	"http://localhost:8081",
	"http://127.0.0.1:8081",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	scheduler: JobScheduler | None = None
	if settings.maintenance_jobs_enabled:
		scheduler = build_maintenance_scheduler()
		scheduler.start()
		app.state.maintenance_scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()


app = FastAPI(title="Rejection Hero API", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
# Starlette disallows wildcard '*' with allow_credentials=True.
if not allow_origins or "*" in allow_origins:
	allow_origins = DEV_ORIGINS if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
quests_namespace = QuestsNamespace()
sio.register_namespace(quests_namespace)
set_quests_namespace(quests_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)

app.include_router(quests.router, tags=["quests"])
app.include_router(ops.router, tags=["ops"])
