"""
Registration desk API (org1)
---------------------------------------------------------
Records visitor entries and looks up a person's visit history.

- GET  /entry                   record a visit drawn from the demo fixtures
- POST /entry                   record a visit from an explicit body
- GET  /entryLog/{personalID}   a person's visits, public + private fields
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from entrylog_node.api.deps import get_org, get_service
from entrylog_node.runtime.entry_logs import Person
from entrylog_node.runtime.entry_service import EntryLogService

router = APIRouter(tags=["registration"])
logger = logging.getLogger("registration")

ENTRY_OK_MESSAGE = "출입 등록 완료"


# -------------------------------
# Models
# -------------------------------
class EntryRequest(Person):
    facilityID: str = Field(..., min_length=1, description="Facility being entered")
    personalID: str = Field(..., min_length=1, description="Visitor id")
    entryTime: Optional[str] = Field(None, description="Defaults to the server's local time")


class EntryResponse(BaseModel):
    ok: bool = True
    message: str = ENTRY_OK_MESSAGE
    entryLogID: str
    facilityID: str
    personalID: str
    entryTime: str
    txId: Optional[str] = None


# -------------------------------
# Routes
# -------------------------------
@router.get("/entry", response_model=EntryResponse)
def entry_random(
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
):
    """Record one visit with a random fixture person and facility."""
    return EntryResponse(**service.record_random_entry(org))


@router.post("/entry", response_model=EntryResponse)
def entry_explicit(
    req: EntryRequest,
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
):
    person = Person(name=req.name, phone=req.phone, address=req.address, year=req.year, sex=req.sex)
    result = service.record_entry(org, req.facilityID, req.personalID, person, req.entryTime)
    return EntryResponse(**result)


@router.get("/entryLog/{personalID}")
def entry_logs_for_person(
    personalID: str,
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
) -> List[Dict[str, Any]]:
    records = service.entry_logs_by_person(org, personalID)
    logger.info("Returned %d entry log(s) for %s", len(records), personalID)
    return records
