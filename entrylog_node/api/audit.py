"""
Audit API (org3)
---------------------------------------------------------
Full (public + private) entry log views for the auditing organization.

- GET /entryLogs/facility/{facilityID}
- GET /entryLogs/personal/{personalID}
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from entrylog_node.api.deps import get_org, get_service
from entrylog_node.runtime.entry_service import EntryLogService

router = APIRouter(prefix="/entryLogs", tags=["audit"])


@router.get("/facility/{facilityID}")
def audit_by_facility(
    facilityID: str,
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
) -> List[Dict[str, Any]]:
    return service.entry_logs_by_facility(org, facilityID)


@router.get("/personal/{personalID}")
def audit_by_person(
    personalID: str,
    service: EntryLogService = Depends(get_service),
    org: str = Depends(get_org),
) -> List[Dict[str, Any]]:
    return service.entry_logs_by_person(org, personalID)
