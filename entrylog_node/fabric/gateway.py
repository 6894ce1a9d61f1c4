"""
Gateway session: profile + wallet identity -> channel handle -> contract.

    gw = Gateway(peer_cli=PeerCLI(...))
    gw.connect(profile, wallet=wallet, identity="user1")
    contract = gw.get_network("dmcchannel").get_contract("entryLog")
    ...
    gw.disconnect()

The peer CLI signs with an MSP directory, so connect() writes the wallet
identity (signcert + key) and the profile's CA / TLS certificates into a
private temporary directory. disconnect() removes it.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import GatewayError, IdentityNotFoundError
from .contract import Contract
from .peer_cli import PeerCLI, PeerContext, PeerTarget
from .profile import ConnectionProfile, Endpoint
from .wallet import FileSystemWallet

log = logging.getLogger(__name__)


class Network:
    def __init__(self, gateway: "Gateway", name: str):
        self.gateway = gateway
        self.name = name
        self._contracts: Dict[str, Contract] = {}

    def get_contract(self, cc_name: str) -> Contract:
        if cc_name not in self._contracts:
            self._contracts[cc_name] = Contract(self, cc_name)
        return self._contracts[cc_name]


class Gateway:
    def __init__(
        self,
        *,
        peer_cli: Optional[PeerCLI] = None,
        orderer: Optional[Dict[str, Any]] = None,
        extra_endorsers: Optional[List[Dict[str, Any]]] = None,
    ):
        self.peer_cli = peer_cli or PeerCLI()
        self._orderer_fallback = dict(orderer or {})
        self._extra_endorsers = list(extra_endorsers or [])
        self.profile: Optional[ConnectionProfile] = None
        self.identity_label: Optional[str] = None
        self.as_localhost = True
        self._workdir: Optional[Path] = None
        self._context: Optional[PeerContext] = None
        self._endorsers: List[PeerTarget] = []
        self._orderer: Optional[PeerTarget] = None
        self._networks: Dict[str, Network] = {}

    # ---------------------------------------------------------------
    # lifecycle
    # ---------------------------------------------------------------
    @property
    def is_connected(self) -> bool:
        return self._context is not None

    def connect(
        self,
        profile: ConnectionProfile,
        *,
        wallet: FileSystemWallet,
        identity: str,
        discovery: Optional[Dict[str, Any]] = None,
    ) -> "Gateway":
        if self.is_connected:
            raise GatewayError("gateway is already connected")

        ident = wallet.get(identity)
        if ident is None:
            log.warning('An identity for the user "%s" does not exist in the wallet %s', identity, wallet.path)
            raise IdentityNotFoundError(
                f'An identity for the user "{identity}" does not exist in the wallet',
                detail={"identity": identity},
            )
        if ident.is_expired():
            raise IdentityNotFoundError(
                f'The certificate for "{identity}" is expired or not yet valid',
                detail={"identity": identity},
            )
        ident.check_private_key()
        if ident.msp_id != profile.msp_id:
            log.warning("Identity %s belongs to %s but the profile is for %s", identity, ident.msp_id, profile.msp_id)

        self.as_localhost = bool((discovery or {}).get("as_localhost", True))
        self.profile = profile
        self.identity_label = identity

        workdir = Path(tempfile.mkdtemp(prefix="entrylog-gw-"))
        try:
            msp = workdir / "msp"
            _write(msp / "signcerts" / "cert.pem", ident.certificate)
            _write(msp / "keystore" / "priv_sk", ident.private_key, mode=0o600)
            ca_pems = profile.ca_certificates()
            if not ca_pems:
                log.warning("Profile %s has no CA certificate; the peer CLI may refuse the MSP", profile.name)
            for i, pem in enumerate(ca_pems):
                _write(msp / "cacerts" / f"ca-{i}.pem", pem)

            self._endorsers = [self._target(p, workdir) for p in profile.peers]
            for extra in self._extra_endorsers:
                self._endorsers.append(
                    PeerTarget(
                        address=str(extra["address"]),
                        tls_ca_file=extra.get("tls_ca_path") or None,
                        hostname_override=extra.get("hostname_override"),
                    )
                )
            self._orderer = self._resolve_orderer(profile, workdir)
        except OSError as e:
            shutil.rmtree(workdir, ignore_errors=True)
            raise GatewayError(f"cannot prepare gateway material: {e}")

        self._workdir = workdir
        self._context = PeerContext(
            msp_id=ident.msp_id,
            msp_dir=str(msp),
            peer=self._endorsers[0],
            tls=profile.peers[0].tls,
        )
        log.info(
            "Gateway connected: profile=%s identity=%s peer=%s",
            profile.name, identity, self._context.peer.address,
        )
        return self

    def disconnect(self) -> None:
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
        was_connected = self.is_connected
        self._workdir = None
        self._context = None
        self._endorsers = []
        self._orderer = None
        self._networks.clear()
        if was_connected:
            log.info("Gateway disconnected: identity=%s", self.identity_label)

    def __enter__(self) -> "Gateway":
        return self

    def __exit__(self, *exc) -> None:
        self.disconnect()

    # ---------------------------------------------------------------
    # handles
    # ---------------------------------------------------------------
    def get_network(self, channel: str) -> Network:
        if not self.is_connected:
            raise GatewayError("gateway is not connected")
        if channel not in self._networks:
            self._networks[channel] = Network(self, channel)
        return self._networks[channel]

    def context(self) -> PeerContext:
        if self._context is None:
            raise GatewayError("gateway is not connected")
        return self._context

    def endorsers(self) -> List[PeerTarget]:
        return list(self._endorsers)

    def orderer(self) -> PeerTarget:
        if self._orderer is None:
            raise GatewayError("gateway is not connected")
        return self._orderer

    # ---------------------------------------------------------------
    # helpers
    # ---------------------------------------------------------------
    def _address(self, ep: Endpoint) -> str:
        return ep.localhost_address() if self.as_localhost else ep.address

    def _target(self, ep: Endpoint, workdir: Path) -> PeerTarget:
        tls_file = None
        if ep.tls_ca_pem:
            tls_file = str(_write(workdir / "tls" / f"{_safe(ep.name)}.pem", ep.tls_ca_pem))
        return PeerTarget(
            address=self._address(ep),
            tls_ca_file=tls_file,
            hostname_override=ep.hostname_override,
        )

    def _resolve_orderer(self, profile: ConnectionProfile, workdir: Path) -> PeerTarget:
        if profile.orderers:
            return self._target(profile.orderers[0], workdir)
        fb = self._orderer_fallback
        if not fb.get("address"):
            raise GatewayError("no orderer in the connection profile and none configured")
        return PeerTarget(
            address=str(fb["address"]),
            tls_ca_file=fb.get("tls_ca_path") or None,
            hostname_override=fb.get("hostname_override") or None,
        )


def _safe(name: str) -> str:
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in name)


def _write(path: Path, text: str, mode: int = 0o644) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    os.chmod(path, mode)
    return path
