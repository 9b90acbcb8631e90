"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nomadnow.api import nomads, ops
from nomadnow.api.errors import install_error_handlers
from nomadnow.domain.directory.registry import directory_registry
from nomadnow.domain.directory.signals import RedisSignalBridge, signal_bus
from nomadnow.infra import http as http_infra
from nomadnow.obs import init as obs_init
from nomadnow.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	http_infra.init_client()
	bridge: RedisSignalBridge | None = None
	worker_tasks: list[asyncio.Task] = []
	if settings.nomads_realtime_updates:
		bridge = RedisSignalBridge(signal_bus)
		worker_tasks.append(asyncio.create_task(bridge.run_forever(), name="nomads-signal-bridge"))
	app.state.signal_bridge = bridge
	try:
		yield
	finally:
		if bridge is not None:
			bridge.stop()
		for task in worker_tasks:
			task.cancel()
		await asyncio.gather(*worker_tasks, return_exceptions=True)
		await directory_registry.close()
		await http_infra.close_client()


app = FastAPI(title="NomadNow Directory", lifespan=lifespan)
install_error_handlers(app)

allow_origins = ["http://localhost:3000"] if settings.is_dev() else []
if allow_origins:
	app.add_middleware(
		CORSMiddleware,
		allow_origins=allow_origins,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)

obs_init(app)
app.include_router(ops.router)
app.include_router(nomads.router)
