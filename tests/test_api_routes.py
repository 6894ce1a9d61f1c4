# tests/test_api_routes.py
import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeContract, FakePool, rows
from entrylog_node.entrylog_api import create_app
from entrylog_node.errors import GatewayError, TransactionError
from entrylog_node.fabric.peer_cli import InvokeResult
from entrylog_node.runtime.entry_logs import (
    TRANSIENT_ADDRESS_KEY,
    TRANSIENT_DELETE_KEY,
    TRANSIENT_KEY,
    decode_transient,
)

VISIT = {
    "facilityID": "Facility2",
    "personalID": "Person1",
    "name": "박찬형",
    "phone": "010-6223-2277",
    "address": "경기도 수원시",
    "year": "1995",
    "sex": "1",
    "entryTime": "2024-05-01 09:30:12",
}

PUBLIC = [
    {"entryLogID": "EntryLog0", "facilityID": "Facility2", "year": "1995", "sex": "1", "entryTime": "t0"},
    {"entryLogID": "EntryLog3", "facilityID": "Facility2", "year": "1990", "sex": "1", "entryTime": "t3"},
]
PRIVATE = [
    {"entryLogID": "EntryLog3", "personalID": "Person0", "name": "김민준", "phone": "p0", "address": "a0"},
    {"entryLogID": "EntryLog0", "personalID": "Person1", "name": "박찬형", "phone": "p1", "address": "a1"},
]


@pytest.fixture
def make_client(cfg, fake_pool, allocator):
    def _make(org="org1", pool=None):
        cfg["server"]["org"] = org
        return TestClient(create_app(cfg, pool=pool or fake_pool, allocator=allocator))

    return _make


# -------------------------------------------------------------------
# org1: registration
# -------------------------------------------------------------------


def test_post_entry_submits_transient_and_advances_counter(make_client, fake_contract, fake_pool, allocator):
    with make_client("org1") as client:
        r = client.post("/entry", json=VISIT)

    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["message"] == "출입 등록 완료"
    assert body["entryLogID"] == "EntryLog0"
    assert body["entryTime"] == "2024-05-01 09:30:12"
    assert body["txId"] == "ab" * 32

    name, args, transient = fake_contract.submitted[0]
    assert name == "setEntryLog"
    assert args == ()
    payload = decode_transient(transient, TRANSIENT_KEY)
    assert payload["entryLogID"] == "EntryLog0"
    assert payload["name"] == "박찬형"
    assert payload["facilityID"] == "Facility2"
    assert fake_pool.orgs_used == ["org1"]
    assert allocator.peek() == 1


def test_random_entry_uses_fixtures(make_client, fake_contract, allocator):
    with make_client("org1") as client:
        first = client.get("/entry").json()
        second = client.get("/entry").json()

    assert [first["entryLogID"], second["entryLogID"]] == ["EntryLog0", "EntryLog1"]
    assert first["facilityID"].startswith("Facility")
    assert first["personalID"].startswith("Person")
    assert len(fake_contract.submitted) == 2
    assert allocator.peek() == 2


def test_empty_field_is_rejected_before_submit(make_client, fake_contract, allocator):
    with make_client("org1") as client:
        r = client.post("/entry", json={**VISIT, "name": ""})
    assert r.status_code == 422
    assert fake_contract.submitted == []
    assert allocator.peek() == 0


def test_failed_submit_keeps_counter(make_client, fake_contract, allocator):
    fake_contract.submit_error = TransactionError("invoke setEntryLog: EntryLog0 already exists")
    with make_client("org1") as client:
        r = client.post("/entry", json=VISIT)
        assert r.status_code == 502
        assert r.json() == {
            "ok": False,
            "error": "transaction_failed",
            "detail": "invoke setEntryLog: EntryLog0 already exists",
        }
        assert allocator.peek() == 0

        fake_contract.submit_error = None
        assert client.post("/entry", json=VISIT).json()["entryLogID"] == "EntryLog0"


def test_unreachable_network_is_503(make_client, fake_contract):
    fake_contract.responses["queryEntryLogsByPersonalID"] = GatewayError("network unreachable")
    with make_client("org1") as client:
        r = client.get("/entryLog/Person1")
    assert r.status_code == 503
    assert r.json()["error"] == "gateway_unavailable"


def test_person_history_joins_on_key(make_client, fake_contract):
    fake_contract.responses = {
        "queryEntryLogsByPersonalID": rows(*PUBLIC),
        "getPrivateEntryLogByPerson": rows(*PRIVATE),
    }
    with make_client("org1") as client:
        r = client.get("/entryLog/Person1")

    assert r.status_code == 200
    records = r.json()
    assert [rec["entryLogID"] for rec in records] == ["EntryLog0", "EntryLog3"]
    assert records[0]["name"] == "박찬형"
    assert records[0]["facilityID"] == "Facility2"
    assert records[1]["name"] == "김민준"
    assert fake_contract.evaluated == [
        ("queryEntryLogsByPersonalID", ("Person1",)),
        ("getPrivateEntryLogByPerson", ("Person1",)),
    ]


def test_mismatched_collections_are_502(make_client, fake_contract):
    fake_contract.responses = {
        "queryEntryLogsByPersonalID": rows(*PUBLIC),
        "getPrivateEntryLogByPerson": rows(PRIVATE[0]),
    }
    with make_client("org1") as client:
        r = client.get("/entryLog/Person1")
    assert r.status_code == 502
    body = r.json()
    assert body["error"] == "ledger_result_mismatch"
    assert body["context"] == {"public": 2, "private": 1}


def test_no_rows(make_client):
    with make_client("org1") as client:
        r = client.get("/entryLog/Person4")
    assert r.status_code == 200
    assert r.json() == []


def test_missing_identity_is_401(cfg, allocator):
    # real pool, empty wallet
    cfg["server"]["org"] = "org1"
    with TestClient(create_app(cfg, allocator=allocator)) as client:
        r = client.post("/entry", json=VISIT)
    assert r.status_code == 401
    assert r.json()["error"] == "identity_not_enrolled"
    assert allocator.peek() == 0


# -------------------------------------------------------------------
# org2: facility
# -------------------------------------------------------------------


def test_facility_gets_public_rows(make_client, fake_contract):
    fake_contract.responses = {"queryEntryLogsByFacilityID": rows(*PUBLIC)}
    with make_client("org2") as client:
        r = client.get("/entryLog/Facility2")
    assert r.status_code == 200
    assert r.json() == json.loads(rows(*PUBLIC))
    assert [name for name, _ in fake_contract.evaluated] == ["queryEntryLogsByFacilityID"]


def test_facility_cannot_register(make_client):
    with make_client("org2") as client:
        assert client.post("/entry", json=VISIT).status_code in (404, 405)


# -------------------------------------------------------------------
# org3: audit
# -------------------------------------------------------------------


def test_audit_by_facility(make_client, fake_contract):
    fake_contract.responses = {
        "queryEntryLogsByFacilityID": rows(*PUBLIC),
        "getPrivateEntryLogByFacility": rows(*PRIVATE),
    }
    with make_client("org3") as client:
        r = client.get("/entryLogs/facility/Facility2")
    assert r.status_code == 200
    assert [(rec["entryLogID"], rec["personalID"]) for rec in r.json()] == [
        ("EntryLog0", "Person1"),
        ("EntryLog3", "Person0"),
    ]


def test_audit_by_person(make_client, fake_contract):
    fake_contract.responses = {
        "queryEntryLogsByPersonalID": rows(PUBLIC[0]),
        "getPrivateEntryLogByPerson": rows(PRIVATE[1]),
    }
    with make_client("org3") as client:
        r = client.get("/entryLogs/personal/Person1")
    assert r.status_code == 200
    assert r.json()[0]["phone"] == "p1"


def test_audit_has_no_entry_route(make_client):
    with make_client("org3") as client:
        assert client.get("/entry").status_code == 404


# -------------------------------------------------------------------
# every org: single records
# -------------------------------------------------------------------


def test_get_single_record(make_client, fake_contract):
    fake_contract.responses = {
        "getEntryLog": json.dumps(PUBLIC[0]),
        "getEntryLogPrivateDetails": json.dumps(PRIVATE[1]),
    }
    with make_client("org2") as client:
        r = client.get("/entryLogs/id/EntryLog0")
    assert r.status_code == 200
    assert r.json() == {**PUBLIC[0], **PRIVATE[1]}


def test_get_single_record_empty_response(make_client, fake_contract):
    fake_contract.responses = {"getEntryLog": b"", "getEntryLogPrivateDetails": b""}
    with make_client("org1") as client:
        r = client.get("/entryLogs/id/EntryLog9")
    assert r.status_code == 502
    assert r.json()["error"] == "ledger_result_invalid"


def test_update_address(make_client, fake_contract):
    with make_client("org1") as client:
        r = client.post("/entryLogs/id/EntryLog0/address", json={"address": "서울특별시 강남구"})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "entryLogID": "EntryLog0", "txId": "ab" * 32}
    name, _, transient = fake_contract.submitted[0]
    assert name == "updateAddress"
    assert decode_transient(transient, TRANSIENT_ADDRESS_KEY) == {
        "entryLogID": "EntryLog0",
        "address": "서울특별시 강남구",
    }


def test_delete(make_client, fake_contract):
    with make_client("org3") as client:
        r = client.delete("/entryLogs/id/EntryLog0")
    assert r.status_code == 200
    name, _, transient = fake_contract.submitted[0]
    assert name == "delete"
    assert decode_transient(transient, TRANSIENT_DELETE_KEY) == {"entryLogID": "EntryLog0"}


# -------------------------------------------------------------------
# health, root, lifecycle
# -------------------------------------------------------------------


def test_root(make_client):
    with make_client("org1") as client:
        r = client.get("/")
    assert r.status_code == 200
    assert r.content == b""


def test_health(make_client, enrolled):
    with make_client("org2") as client:
        body = client.get("/health").json()
    assert body["ok"] is True
    assert body["org"] == "org2"
    assert body["channel"] == "dmcchannel"
    assert body["chaincode"] == "entryLog"
    assert body["identity_enrolled"] is True
    assert body["next_entry_log"] == "EntryLog0"


def test_lifespan_closes_pool(make_client, fake_pool):
    with make_client("org1"):
        assert fake_pool.closed is False
    assert fake_pool.closed is True


def test_unsupported_org(cfg, fake_pool, allocator):
    cfg["server"]["org"] = "org7"
    with pytest.raises(ValueError):
        create_app(cfg, pool=fake_pool, allocator=allocator)


def test_separate_pool_per_app(cfg, wallet, allocator):
    pool = FakePool(FakeContract(), wallet)
    cfg["server"]["org"] = "org3"
    with TestClient(create_app(cfg, pool=pool, allocator=allocator)) as client:
        client.get("/entryLogs/personal/Person1")
    assert pool.orgs_used == ["org3"]


def test_writes_continue_after_counter_file_corruption(make_client, fake_contract, allocator):
    on_ledger = []

    def submit(name, *args, transient=None):
        entry_log_id = decode_transient(transient)["entryLogID"]
        if entry_log_id in on_ledger:
            raise TransactionError(f"This entry log already exists: {entry_log_id}")
        on_ledger.append(entry_log_id)
        return InvokeResult(tx_id="cd" * 32)

    fake_contract.submit_transaction = submit
    with make_client("org1") as client:
        for _ in range(3):
            assert client.post("/entry", json=VISIT).status_code == 200
        allocator.path.write_text("{corrupt")
        outcomes = [client.post("/entry", json=VISIT) for _ in range(2)]

    assert [r.status_code for r in outcomes] == [200, 200]
    assert on_ledger == [f"EntryLog{i}" for i in range(5)]
    assert allocator.peek() == 5
