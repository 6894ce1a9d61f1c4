"""
EntryLog records: the transient payload submitted to `setEntryLog`, the demo
visitor fixtures, and the join of public and private query results.

The chaincode splits one record across two private data collections:

    collectionEntryLog                -> entryLogID, facilityID, year, sex, entryTime
    collectionEntryLogPrivateDetails  -> entryLogID, personalID, name, phone, address

Range queries return rows shaped `{"Key": <entryLogID>, "Record": {...}}`.
The two collections are queried separately, so rows are joined on the key,
never by position.
"""

from __future__ import annotations

import base64
import json
import random
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..errors import RecordDecodeError, RecordMismatchError

TRANSIENT_KEY = "entryLog"
TRANSIENT_ADDRESS_KEY = "entryLog_address"
TRANSIENT_DELETE_KEY = "entryLog_delete"

ENTRY_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Some chaincode builds serialize the id under the Go field name
_ID_FIELDS = ("entryLogID", "EntryLogID")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class Person(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    year: str = Field(..., min_length=1, description="Birth year")
    sex: str = Field(..., min_length=1)


class EntryLogInput(Person):
    """Everything `setEntryLog` requires in its transient map."""

    entryLogID: str = Field(..., min_length=1)
    facilityID: str = Field(..., min_length=1)
    entryTime: str = Field(..., min_length=1)
    personalID: str = Field(..., min_length=1)


class AddressUpdate(BaseModel):
    entryLogID: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)


class EntryLogDelete(BaseModel):
    entryLogID: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Demo fixtures (what the registration desk's "entry" button draws from)
# ---------------------------------------------------------------------------

PEOPLE: List[Person] = [
    Person(name="김민준", phone="010-1234-5678", address="서울특별시 종로구", year="1990", sex="1"),
    Person(name="박찬형", phone="010-6223-2277", address="경기도 수원시", year="1995", sex="1"),
    Person(name="이서연", phone="010-9876-5432", address="부산광역시 해운대구", year="1988", sex="2"),
    Person(name="최지우", phone="010-5555-0101", address="대전광역시 유성구", year="2001", sex="2"),
    Person(name="정하준", phone="010-3141-5926", address="인천광역시 남동구", year="1979", sex="1"),
]

FACILITY_COUNT = 5


def person_id(index: int) -> str:
    return f"Person{index}"


def facility_id(index: int) -> str:
    return f"Facility{index}"


def pick_random_visit(rng: Optional[random.Random] = None) -> Tuple[str, str, Person]:
    """Return (facilityID, personalID, person) drawn uniformly from the fixtures."""
    rng = rng or random
    p_idx = rng.randrange(len(PEOPLE))
    f_idx = rng.randrange(FACILITY_COUNT)
    return facility_id(f_idx), person_id(p_idx), PEOPLE[p_idx]


def format_entry_time(now: Optional[datetime] = None) -> str:
    """Local wall clock time, e.g. '2024-05-01 09:30:12'."""
    now = now or datetime.now()
    return now.strftime(ENTRY_TIME_FORMAT)


def build_entry_log(
    entry_log_id: str,
    facility: str,
    personal: str,
    person: Person,
    entry_time: Optional[str] = None,
) -> EntryLogInput:
    return EntryLogInput(
        entryLogID=entry_log_id,
        facilityID=facility,
        entryTime=entry_time or format_entry_time(),
        personalID=personal,
        **person.model_dump(),
    )


# ---------------------------------------------------------------------------
# Transient payloads
# ---------------------------------------------------------------------------


def _b64_json(obj: BaseModel) -> str:
    raw = json.dumps(obj.model_dump(), ensure_ascii=False).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def encode_transient(record: EntryLogInput) -> Dict[str, str]:
    return {TRANSIENT_KEY: _b64_json(record)}


def encode_address_transient(update: AddressUpdate) -> Dict[str, str]:
    return {TRANSIENT_ADDRESS_KEY: _b64_json(update)}


def encode_delete_transient(request: EntryLogDelete) -> Dict[str, str]:
    return {TRANSIENT_DELETE_KEY: _b64_json(request)}


def decode_transient(transient: Dict[str, str], key: str = TRANSIENT_KEY) -> Dict[str, Any]:
    return json.loads(base64.b64decode(transient[key]).decode("utf-8"))


# ---------------------------------------------------------------------------
# Query results
# ---------------------------------------------------------------------------


def parse_json(raw: Union[bytes, str], what: str) -> Any:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    raw = raw.strip()
    if not raw:
        raise RecordDecodeError(f"{what}: empty response from chaincode")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise RecordDecodeError(f"{what}: invalid JSON from chaincode: {e}")


def parse_rows(raw: Union[bytes, str], what: str) -> List[Dict[str, Any]]:
    """Parse a range query result; an empty payload means no rows."""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    if not text.strip():
        return []
    rows = parse_json(text, what)
    if not isinstance(rows, list):
        raise RecordDecodeError(f"{what}: expected a JSON array, got {type(rows).__name__}")
    for row in rows:
        if not isinstance(row, dict) or not isinstance(row.get("Record"), dict):
            raise RecordDecodeError(f"{what}: row without a Record object")
    return rows


def record_key(row: Dict[str, Any]) -> Optional[str]:
    key = row.get("Key")
    if key:
        return str(key)
    record = row.get("Record") or {}
    for field in _ID_FIELDS:
        if record.get(field):
            return str(record[field])
    return None


def _index_by_key(rows: Iterable[Dict[str, Any]], what: str) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        key = record_key(row)
        if key is None:
            raise RecordDecodeError(f"{what}: row without a key")
        if key in out:
            raise RecordMismatchError(f"{what}: duplicate key {key}", detail={"key": key})
        out[key] = row["Record"]
    return out


def merge_records(
    public_rows: List[Dict[str, Any]],
    private_rows: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Join public rows with their private details on the record key.

    Both result sets must describe exactly the same records. Anything else
    (different sizes, keys present on one side only) raises
    RecordMismatchError instead of returning a partial merge.
    """
    if len(public_rows) != len(private_rows):
        raise RecordMismatchError(
            "public and private result sets differ in size",
            detail={"public": len(public_rows), "private": len(private_rows)},
        )

    public = _index_by_key(public_rows, "public records")
    private = _index_by_key(private_rows, "private records")

    missing = sorted(set(public) ^ set(private))
    if missing:
        raise RecordMismatchError(
            "public and private result sets do not share the same keys",
            detail={"unmatched": missing},
        )

    # keep the public query's ordering
    return [merge_single(public[key], private[key]) for key in public]


def merge_single(public: Dict[str, Any], private: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(public)
    merged.update(private)
    return merged


def redact(record: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a record safe to log: private fields masked."""
    return {k: ("***" if k in ("name", "phone", "address") else v) for k, v in record.items()}
