"""
Common connection profile loader.

Reads the per-organization JSON document produced by the Fabric sample
networks (connection-org1.json, ...). Only the pieces the peer CLI needs are
kept: the client organization and MSP id, its peers, optional orderers and
certificate authorities, each with their TLS root certificate.

TLS certificates may be inlined (`tlsCACerts.pem`) or referenced by file
(`tlsCACerts.path`, relative to the profile's directory).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlsplit

from ..errors import ProfileError


@dataclass
class Endpoint:
    name: str
    url: str
    tls_ca_pem: Optional[str] = None
    hostname_override: Optional[str] = None

    @property
    def tls(self) -> bool:
        return self.url.startswith(("grpcs://", "https://"))

    @property
    def address(self) -> str:
        """host:port, as the peer CLI expects it."""
        parts = urlsplit(self.url if "://" in self.url else f"grpc://{self.url}")
        if not parts.hostname or not parts.port:
            raise ProfileError(f"endpoint {self.name!r} has no host:port in url {self.url!r}")
        return f"{parts.hostname}:{parts.port}"

    def localhost_address(self) -> str:
        return "localhost:" + self.address.rsplit(":", 1)[1]


@dataclass
class CertificateAuthority:
    name: str
    url: str
    ca_name: Optional[str] = None
    tls_ca_pem: Optional[str] = None


@dataclass
class ConnectionProfile:
    name: str
    organization: str
    msp_id: str
    peers: List[Endpoint]
    orderers: List[Endpoint] = field(default_factory=list)
    certificate_authorities: List[CertificateAuthority] = field(default_factory=list)
    source: Optional[Path] = None

    def ca_certificates(self) -> List[str]:
        return [ca.tls_ca_pem for ca in self.certificate_authorities if ca.tls_ca_pem]


def _read_tls_pem(section: Dict[str, Any], base_dir: Path, owner: str) -> Optional[str]:
    tls = section.get("tlsCACerts") or {}
    if not isinstance(tls, dict):
        raise ProfileError(f"{owner}: tlsCACerts must be an object")
    if tls.get("pem"):
        pem = tls["pem"]
        # Some generators emit a list of PEM strings
        return "".join(pem) if isinstance(pem, list) else str(pem)
    if tls.get("path"):
        p = Path(tls["path"])
        if not p.is_absolute():
            p = base_dir / p
        try:
            return p.read_text(encoding="utf-8")
        except OSError as e:
            raise ProfileError(f"{owner}: cannot read TLS certificate {p}: {e}")
    return None


def _endpoint(name: str, section: Any, base_dir: Path, kind: str) -> Endpoint:
    if not isinstance(section, dict) or not section.get("url"):
        raise ProfileError(f"{kind} {name!r} has no url")
    grpc = section.get("grpcOptions") or {}
    override = grpc.get("ssl-target-name-override") or grpc.get("hostnameOverride")
    return Endpoint(
        name=name,
        url=str(section["url"]),
        tls_ca_pem=_read_tls_pem(section, base_dir, f"{kind} {name}"),
        hostname_override=override,
    )


def parse_profile(data: Dict[str, Any], base_dir: Path, source: Optional[Path] = None) -> ConnectionProfile:
    if not isinstance(data, dict):
        raise ProfileError("connection profile must be a JSON object")

    org_name = (data.get("client") or {}).get("organization")
    organizations = data.get("organizations") or {}
    if not org_name:
        if len(organizations) != 1:
            raise ProfileError("profile has no client.organization and is not single-org")
        org_name = next(iter(organizations))
    org = organizations.get(org_name)
    if not isinstance(org, dict):
        raise ProfileError(f"organization {org_name!r} is not defined in the profile")

    msp_id = org.get("mspid") or org.get("mspId")
    if not msp_id:
        raise ProfileError(f"organization {org_name!r} has no mspid")

    all_peers = data.get("peers") or {}
    peer_names = org.get("peers") or list(all_peers)
    peers = []
    for name in peer_names:
        if name not in all_peers:
            raise ProfileError(f"peer {name!r} listed for {org_name} but not defined")
        peers.append(_endpoint(name, all_peers[name], base_dir, "peer"))
    if not peers:
        raise ProfileError(f"organization {org_name!r} has no peers")

    orderers = [
        _endpoint(name, section, base_dir, "orderer")
        for name, section in (data.get("orderers") or {}).items()
    ]

    all_cas = data.get("certificateAuthorities") or {}
    cas = []
    for name in org.get("certificateAuthorities") or list(all_cas):
        section = all_cas.get(name)
        if not isinstance(section, dict):
            continue
        cas.append(
            CertificateAuthority(
                name=name,
                url=str(section.get("url", "")),
                ca_name=section.get("caName"),
                tls_ca_pem=_read_tls_pem(section, base_dir, f"certificate authority {name}"),
            )
        )

    return ConnectionProfile(
        name=str(data.get("name") or org_name),
        organization=org_name,
        msp_id=str(msp_id),
        peers=peers,
        orderers=orderers,
        certificate_authorities=cas,
        source=source,
    )


def load_profile(path: Union[str, Path]) -> ConnectionProfile:
    """Read and parse a connection profile. No caching: every call hits the disk."""
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ProfileError(f"connection profile not found: {p}")
    except (OSError, json.JSONDecodeError) as e:
        raise ProfileError(f"cannot read connection profile {p}: {e}")
    return parse_profile(data, p.resolve().parent, source=p)
