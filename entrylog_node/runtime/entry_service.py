"""
EntryLog operations against the `entryLog` chaincode.

Both the HTTP routes and the command line scripts go through EntryLogService,
so every caller gets the same ordering rules:

- writes reserve an id, submit, and only then advance the counter
- reads query the public and private collections and join them on the key
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional

from ..errors import RecordDecodeError
from ..fabric.pool import GatewayPool
from .allocator import SequentialIdAllocator
from .entry_logs import (
    AddressUpdate,
    EntryLogDelete,
    Person,
    build_entry_log,
    encode_address_transient,
    encode_delete_transient,
    encode_transient,
    merge_records,
    merge_single,
    parse_json,
    parse_rows,
    pick_random_visit,
    redact,
)

log = logging.getLogger(__name__)

# chaincode functions
FN_SET_ENTRY_LOG = "setEntryLog"
FN_GET_ENTRY_LOG = "getEntryLog"
FN_GET_PRIVATE_DETAILS = "getEntryLogPrivateDetails"
FN_QUERY_BY_PERSON = "queryEntryLogsByPersonalID"
FN_QUERY_BY_FACILITY = "queryEntryLogsByFacilityID"
FN_PRIVATE_BY_PERSON = "getPrivateEntryLogByPerson"
FN_PRIVATE_BY_FACILITY = "getPrivateEntryLogByFacility"
FN_UPDATE_ADDRESS = "updateAddress"
FN_DELETE = "delete"


class EntryLogService:
    def __init__(self, pool: GatewayPool, allocator: SequentialIdAllocator):
        self.pool = pool
        self.allocator = allocator

    # ---------------------------------------------------------------
    # writes
    # ---------------------------------------------------------------
    def record_entry(
        self,
        org: str,
        facility: str,
        personal: str,
        person: Person,
        entry_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self.pool.contract(org) as contract:
            with self.allocator.reserve() as entry_log_id:
                record = build_entry_log(entry_log_id, facility, personal, person, entry_time)
                log.debug("Submitting %s: %s", entry_log_id, redact(record.model_dump()))
                result = (
                    contract.create_transaction(FN_SET_ENTRY_LOG)
                    .set_transient(encode_transient(record))
                    .submit()
                )
        log.info("Submitted %s facility=%s tx=%s", entry_log_id, facility, result.tx_id)
        return {
            "entryLogID": entry_log_id,
            "facilityID": facility,
            "personalID": personal,
            "entryTime": record.entryTime,
            "txId": result.tx_id,
        }

    def record_random_entry(self, org: str, rng: Optional[random.Random] = None) -> Dict[str, Any]:
        facility, personal, person = pick_random_visit(rng)
        return self.record_entry(org, facility, personal, person)

    def update_address(self, org: str, entry_log_id: str, address: str) -> Dict[str, Any]:
        update = AddressUpdate(entryLogID=entry_log_id, address=address)
        with self.pool.contract(org) as contract:
            result = contract.submit_transaction(
                FN_UPDATE_ADDRESS, transient=encode_address_transient(update)
            )
        log.info("Updated address of %s tx=%s", entry_log_id, result.tx_id)
        return {"entryLogID": entry_log_id, "txId": result.tx_id}

    def delete_entry_log(self, org: str, entry_log_id: str) -> Dict[str, Any]:
        request = EntryLogDelete(entryLogID=entry_log_id)
        with self.pool.contract(org) as contract:
            result = contract.submit_transaction(FN_DELETE, transient=encode_delete_transient(request))
        log.info("Deleted %s tx=%s", entry_log_id, result.tx_id)
        return {"entryLogID": entry_log_id, "txId": result.tx_id}

    # ---------------------------------------------------------------
    # reads
    # ---------------------------------------------------------------
    def _joined(self, org: str, public_fn: str, private_fn: str, key: str) -> List[Dict[str, Any]]:
        with self.pool.contract(org) as contract:
            public = parse_rows(contract.evaluate_transaction(public_fn, key), public_fn)
            private = parse_rows(contract.evaluate_transaction(private_fn, key), private_fn)
        merged = merge_records(public, private)
        log.info("%s(%s): %d record(s)", public_fn, key, len(merged))
        return merged

    def entry_logs_by_person(self, org: str, personal_id: str) -> List[Dict[str, Any]]:
        return self._joined(org, FN_QUERY_BY_PERSON, FN_PRIVATE_BY_PERSON, personal_id)

    def entry_logs_by_facility(self, org: str, facility_id: str) -> List[Dict[str, Any]]:
        return self._joined(org, FN_QUERY_BY_FACILITY, FN_PRIVATE_BY_FACILITY, facility_id)

    def public_entry_logs_by_facility(self, org: str, facility_id: str) -> List[Dict[str, Any]]:
        """Rows from the public collection only, as {"Key", "Record"} pairs."""
        with self.pool.contract(org) as contract:
            rows = parse_rows(contract.evaluate_transaction(FN_QUERY_BY_FACILITY, facility_id), FN_QUERY_BY_FACILITY)
        log.info("%s(%s): %d row(s)", FN_QUERY_BY_FACILITY, facility_id, len(rows))
        return rows

    def get_entry_log(self, org: str, entry_log_id: str) -> Dict[str, Any]:
        with self.pool.contract(org) as contract:
            public = parse_json(contract.evaluate_transaction(FN_GET_ENTRY_LOG, entry_log_id), FN_GET_ENTRY_LOG)
            private = parse_json(
                contract.evaluate_transaction(FN_GET_PRIVATE_DETAILS, entry_log_id),
                FN_GET_PRIVATE_DETAILS,
            )
        if not isinstance(public, dict) or not isinstance(private, dict):
            raise RecordDecodeError(f"{entry_log_id}: expected JSON objects from the chaincode")
        return merge_single(public, private)
