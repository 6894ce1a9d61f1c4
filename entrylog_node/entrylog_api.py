from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from entrylog_node.api import audit, facility, health, records, registration
from entrylog_node.config import get_cors_origins, get_log_level, get_org, load_config
from entrylog_node.errors import EntryLogError
from entrylog_node.fabric.pool import GatewayPool
from entrylog_node.runtime.allocator import SequentialIdAllocator
from entrylog_node.runtime.entry_service import EntryLogService

log = logging.getLogger(__name__)

# Each organization runs its own copy of the service with its own routes
ROUTERS_BY_ORG = {
    "org1": [registration.router],
    "org2": [facility.router],
    "org3": [audit.router],
}


def configure_logging(cfg: Dict[str, Any]) -> None:
    logging.basicConfig(
        level=getattr(logging, get_log_level(cfg), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_allocator(cfg: Dict[str, Any]) -> SequentialIdAllocator:
    alloc = cfg["allocator"]
    return SequentialIdAllocator(
        alloc["path"],
        start=int(alloc.get("start", 0)),
        keep_backups=int(alloc.get("keep_backups", 2)),
    )


def create_app(
    cfg: Optional[Dict[str, Any]] = None,
    *,
    pool: Optional[GatewayPool] = None,
    allocator: Optional[SequentialIdAllocator] = None,
) -> FastAPI:
    cfg = cfg or load_config(os.getcwd(), os.getenv("ENTRYLOG_CONFIG"))
    configure_logging(cfg)

    org = get_org(cfg)
    if org not in ROUTERS_BY_ORG:
        raise ValueError(f"unsupported org {org!r}; expected one of {sorted(ROUTERS_BY_ORG)}")

    pool = pool or GatewayPool(cfg)
    allocator = allocator or build_allocator(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("EntryLog node serving %s on channel %s", org, pool.channel)
        yield
        pool.close()

    app = FastAPI(title=f"EntryLog Node API ({org})", lifespan=lifespan)
    app.state.cfg = cfg
    app.state.org = org
    app.state.service = EntryLogService(pool, allocator)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(cfg),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EntryLogError)
    async def entrylog_error_handler(request: Request, exc: EntryLogError):
        if exc.status_code >= 500:
            log.error("%s %s failed: %s: %s", request.method, request.url.path, exc.code, exc.message)
        else:
            log.warning("%s %s rejected: %s: %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(health.router)
    app.include_router(records.router)
    for router in ROUTERS_BY_ORG[org]:
        app.include_router(router)

    return app
