"""
Single record API (every org)
---------------------------------------------------------
- GET    /entryLogs/id/{entryLogID}           public record merged with private details
- POST   /entryLogs/id/{entryLogID}/address   change the visitor address (private data)
- DELETE /entryLogs/id/{entryLogID}           remove the record from both collections

Private fields travel in the transient map, never as plain chaincode args.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from entrylog_node.api.deps import get_org, get_service
from entrylog_node.runtime.entry_service import EntryLogService

router = APIRouter(prefix="/entryLogs/id", tags=["records"])


class AddressRequest(BaseModel):
    address: str = Field(..., min_length=1)


@router.get("/{entryLogID}")
def get_entry_log(
    entryLogID: str,
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
) -> Dict[str, Any]:
    return service.get_entry_log(org, entryLogID)


@router.post("/{entryLogID}/address")
def update_address(
    entryLogID: str,
    req: AddressRequest,
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
) -> Dict[str, Any]:
    return {"ok": True, **service.update_address(org, entryLogID, req.address)}


@router.delete("/{entryLogID}")
def delete_entry_log(
    entryLogID: str,
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
) -> Dict[str, Any]:
    return {"ok": True, **service.delete_entry_log(org, entryLogID)}
