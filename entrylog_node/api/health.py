# entrylog_node/api/health.py
from __future__ import annotations

import time
from typing import List

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from entrylog_node.api.deps import get_org, get_service
from entrylog_node.runtime.allocator import format_id
from entrylog_node.runtime.entry_service import EntryLogService

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    ok: bool = True
    ts: float = Field(..., description="Server timestamp.")
    org: str
    channel: str
    chaincode: str
    identity: str
    identity_enrolled: bool
    next_entry_log: str
    connected_orgs: List[str]


@router.get("/")
def root() -> Response:
    return Response(status_code=200)


@router.get("/health", response_model=HealthResponse)
def health(
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
):
    pool = service.pool
    return HealthResponse(
        ts=time.time(),
        org=org,
        channel=pool.channel,
        chaincode=pool.chaincode,
        identity=pool.identity,
        identity_enrolled=pool.wallet.exists(pool.identity),
        next_entry_log=format_id(service.allocator.peek()),
        connected_orgs=pool.connected_orgs(),
    )
