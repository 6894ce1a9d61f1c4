from __future__ import annotations

from fastapi import Request

from entrylog_node.runtime.entry_service import EntryLogService


def get_service(request: Request) -> EntryLogService:
    return request.app.state.service


def get_org(request: Request) -> str:
    return request.app.state.org
