"""
entrylog_node/fabric/wallet.py
--------------------------------------------------
Filesystem wallet compatible with the Fabric SDK layout: one `<label>.id`
JSON file per identity,

    {
      "credentials": {"certificate": "<PEM>", "privateKey": "<PEM>"},
      "mspId": "Org1MSP",
      "type": "X.509",
      "version": 1
    }

Identities are enrolled elsewhere (CA enrollment scripts). This module only
reads, stores and sanity-checks them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from ..errors import WalletError
from ..runtime.atomic_store import atomic_write_bytes

ID_SUFFIX = ".id"


@dataclass
class CertificateInfo:
    common_name: Optional[str]
    issuer: str
    not_before: datetime
    not_after: datetime


@dataclass
class Identity:
    msp_id: str
    certificate: str
    private_key: str
    type: str = "X.509"
    version: int = 1

    # ---------------------------------------------------------------
    # (de)serialization
    # ---------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "credentials": {
                "certificate": self.certificate,
                "privateKey": self.private_key,
            },
            "mspId": self.msp_id,
            "type": self.type,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        creds = data.get("credentials") or {}
        if not data.get("mspId") or not creds.get("certificate") or not creds.get("privateKey"):
            raise WalletError("identity needs mspId, credentials.certificate and credentials.privateKey")
        if data.get("type", "X.509") != "X.509":
            raise WalletError(f"unsupported identity type {data.get('type')!r}")
        return cls(
            msp_id=str(data["mspId"]),
            certificate=str(creds["certificate"]),
            private_key=str(creds["privateKey"]),
            type="X.509",
            version=int(data.get("version", 1)),
        )

    # ---------------------------------------------------------------
    # certificate checks
    # ---------------------------------------------------------------
    def certificate_info(self) -> CertificateInfo:
        try:
            cert = x509.load_pem_x509_certificate(self.certificate.encode("utf-8"))
        except ValueError as e:
            raise WalletError(f"identity certificate is not valid PEM: {e}")
        cns = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        return CertificateInfo(
            common_name=str(cns[0].value) if cns else None,
            issuer=cert.issuer.rfc4514_string(),
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        info = self.certificate_info()
        return not (info.not_before <= now <= info.not_after)

    def check_private_key(self) -> None:
        try:
            serialization.load_pem_private_key(self.private_key.encode("utf-8"), password=None)
        except (ValueError, TypeError) as e:
            raise WalletError(f"identity private key cannot be loaded: {e}")


class FileSystemWallet:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _file(self, label: str) -> Path:
        if not label or "/" in label or label.startswith("."):
            raise WalletError(f"invalid identity label {label!r}")
        return self.path / f"{label}{ID_SUFFIX}"

    def exists(self, label: str) -> bool:
        return self._file(label).exists()

    def get(self, label: str) -> Optional[Identity]:
        """Return the identity, or None when nothing is enrolled under `label`."""
        f = self._file(label)
        if not f.exists():
            return None
        try:
            data = json.loads(f.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise WalletError(f"cannot read identity {label!r} from {f}: {e}")
        if not isinstance(data, dict):
            raise WalletError(f"identity file {f} is not a JSON object")
        return Identity.from_dict(data)

    def put(self, label: str, identity: Identity) -> None:
        payload = json.dumps(identity.to_dict(), indent=2).encode("utf-8")
        atomic_write_bytes(self._file(label), payload)

    def remove(self, label: str) -> bool:
        f = self._file(label)
        if not f.exists():
            return False
        f.unlink()
        return True

    def list(self) -> List[str]:
        if not self.path.is_dir():
            return []
        return sorted(p.name[: -len(ID_SUFFIX)] for p in self.path.glob(f"*{ID_SUFFIX}"))
