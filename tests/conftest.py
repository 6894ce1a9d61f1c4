import json
import pathlib
import sys
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

# Ensure the repo root (containing the entrylog_node package dir) is on sys.path.
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from entrylog_node.config import load_config
from entrylog_node.fabric.peer_cli import InvokeResult
from entrylog_node.fabric.wallet import FileSystemWallet, Identity
from entrylog_node.runtime.allocator import SequentialIdAllocator


def make_cert(common_name="user1", *, days_before=1, days_after=365):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=days_before))
        .not_valid_after(now + timedelta(days=days_after))
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode()
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    return cert_pem, key_pem


def make_identity(msp_id="Org1MSP", common_name="user1", **validity):
    cert_pem, key_pem = make_cert(common_name, **validity)
    return Identity(msp_id=msp_id, certificate=cert_pem, private_key=key_pem)


def profile_dict(org="Org1", msp_id="Org1MSP", port=7051, tls_pem=None, ca_pem=None, orderer=False):
    tls_pem = tls_pem or make_cert("tlsca")[0]
    ca_pem = ca_pem or make_cert("ca")[0]
    lower = org.lower()
    data = {
        "name": f"first-network-{lower}",
        "version": "1.0.0",
        "client": {"organization": org},
        "organizations": {
            org: {
                "mspid": msp_id,
                "peers": [f"peer0.{lower}.example.com"],
                "certificateAuthorities": [f"ca.{lower}.example.com"],
            }
        },
        "peers": {
            f"peer0.{lower}.example.com": {
                "url": f"grpcs://localhost:{port}",
                "tlsCACerts": {"pem": tls_pem},
                "grpcOptions": {"ssl-target-name-override": f"peer0.{lower}.example.com"},
            }
        },
        "certificateAuthorities": {
            f"ca.{lower}.example.com": {
                "url": "https://localhost:7054",
                "caName": f"ca-{lower}",
                "tlsCACerts": {"pem": ca_pem},
            }
        },
    }
    if orderer:
        data["orderers"] = {
            "orderer.example.com": {
                "url": "grpcs://orderer.example.com:7050",
                "tlsCACerts": {"pem": tls_pem},
                "grpcOptions": {"ssl-target-name-override": "orderer.example.com"},
            }
        }
    return data


@pytest.fixture
def repo(tmp_path, monkeypatch):
    """Temporary repo root with connection profiles for org1..org3 and an empty wallet."""
    for name in [
        "ENTRYLOG_ORG", "ENTRYLOG_CHANNEL", "ENTRYLOG_CHAINCODE", "ENTRYLOG_IDENTITY",
        "ENTRYLOG_WALLET_DIR", "ENTRYLOG_INDEX_FILE", "ENTRYLOG_PEER_BIN", "FABRIC_CFG_PATH",
        "ENTRYLOG_LOG_LEVEL", "ENTRYLOG_CONFIG", "ENTRYLOG_TIMEOUT_SEC", "ENTRYLOG_HOST", "ENTRYLOG_PORT",
    ]:
        monkeypatch.delenv(name, raising=False)
    net = tmp_path / "first-network"
    net.mkdir()
    for i, port in [(1, 7051), (2, 9051), (3, 11051)]:
        data = profile_dict(org=f"Org{i}", msp_id=f"Org{i}MSP", port=port)
        (net / f"connection-org{i}.json").write_text(json.dumps(data))
    (tmp_path / "wallet").mkdir()
    return tmp_path


@pytest.fixture
def cfg(repo):
    return load_config(str(repo))


@pytest.fixture
def wallet(cfg):
    return FileSystemWallet(cfg["fabric"]["wallet_dir"])


@pytest.fixture
def enrolled(wallet):
    ident = make_identity()
    wallet.put("user1", ident)
    return ident


@pytest.fixture
def allocator(cfg):
    return SequentialIdAllocator(cfg["allocator"]["path"])


# ---------------------------------------------------------------------------
# Fabric fakes
# ---------------------------------------------------------------------------


class FakeContract:
    """Records calls; answers evaluate() from `responses` (bytes, str or an exception)."""

    def __init__(self, responses=None, submit_error=None):
        self.responses = dict(responses or {})
        self.submit_error = submit_error
        self.evaluated = []
        self.submitted = []

    def evaluate_transaction(self, name, *args):
        self.evaluated.append((name, args))
        value = self.responses.get(name, b"[]")
        if isinstance(value, Exception):
            raise value
        return value.encode() if isinstance(value, str) else value

    def submit_transaction(self, name, *args, transient=None):
        self.submitted.append((name, args, transient))
        if self.submit_error is not None:
            raise self.submit_error
        return InvokeResult(tx_id="ab" * 32)

    def create_transaction(self, name):
        from entrylog_node.fabric.contract import Transaction

        return Transaction(self, name)


class FakePool:
    def __init__(self, contract, wallet, channel="dmcchannel", chaincode="entryLog", identity="user1"):
        self.fake_contract = contract
        self.wallet = wallet
        self.channel = channel
        self.chaincode = chaincode
        self.identity = identity
        self.closed = False
        self.orgs_used = []

    @contextmanager
    def contract(self, org):
        self.orgs_used.append(org)
        yield self.fake_contract

    def connected_orgs(self):
        return sorted(set(self.orgs_used))

    def close(self):
        self.closed = True


@pytest.fixture
def fake_contract():
    return FakeContract()


@pytest.fixture
def fake_pool(fake_contract, wallet):
    return FakePool(fake_contract, wallet)


def rows(*records):
    return json.dumps([{"Key": r["entryLogID"], "Record": r} for r in records])
