"""
Facility API (org2)
---------------------------------------------------------
A facility only sees the public side of its entry logs.

- GET /entryLog/{facilityID}   public rows ({"Key", "Record"}) for one facility
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from entrylog_node.api.deps import get_org, get_service
from entrylog_node.runtime.entry_service import EntryLogService

router = APIRouter(tags=["facility"])
logger = logging.getLogger("facility")


@router.get("/entryLog/{facilityID}")
def entry_logs_for_facility(
    facilityID: str,
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
) -> List[Dict[str, Any]]:
    rows = service.public_entry_logs_by_facility(org, facilityID)
    logger.info("Returned %d public row(s) for %s", len(rows), facilityID)
    return rows
