"""
Long-lived gateways, one per organization.

Connecting means loading the connection profile, opening the wallet,
checking the identity and writing MSP material to disk, so it happens once
per org instead of once per request:

    with pool.contract("org1") as contract:
        contract.evaluate_transaction("getEntryLog", "EntryLog4")

The wallet is still checked on every acquire, so removing an identity takes
effect immediately. A GatewayError raised while a gateway is in use drops it
from the pool; the next acquire reconnects. A dropped gateway is only
disconnected once every request still holding it has released it.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, Set

from ..config import get_profile_path
from ..errors import GatewayError, IdentityNotFoundError
from .contract import Contract
from .gateway import Gateway
from .peer_cli import PeerCLI
from .profile import ConnectionProfile, load_profile
from .wallet import FileSystemWallet

log = logging.getLogger(__name__)


class GatewayPool:
    def __init__(
        self,
        cfg: Dict[str, Any],
        *,
        gateway_factory: Optional[Callable[[str], Gateway]] = None,
        profile_loader: Callable[[str], ConnectionProfile] = load_profile,
    ):
        self.cfg = cfg
        fab = cfg["fabric"]
        self.channel = str(fab["channel"])
        self.chaincode = str(fab["chaincode"])
        self.identity = str(fab["identity"])
        self.wallet = FileSystemWallet(fab["wallet_dir"])
        self._profile_loader = profile_loader
        self._gateway_factory = gateway_factory or self._default_gateway
        self._gateways: Dict[str, Gateway] = {}
        self._users: Dict[Gateway, int] = {}
        self._retired: Set[Gateway] = set()
        self._lock = threading.Lock()

    def _default_gateway(self, org: str) -> Gateway:
        fab = self.cfg["fabric"]
        return Gateway(
            peer_cli=PeerCLI(
                peer_bin=str(fab.get("peer_bin", "peer")),
                fabric_cfg_path=str(fab.get("fabric_cfg_path") or ""),
                timeout=float(fab.get("timeout_sec", 60)),
            ),
            orderer=fab.get("orderer"),
            extra_endorsers=(fab.get("endorsing_peers") or {}).get(org),
        )

    def _connect(self, org: str) -> Gateway:
        profile = self._profile_loader(get_profile_path(self.cfg, org))
        gw = self._gateway_factory(org)
        gw.connect(
            profile,
            wallet=self.wallet,
            identity=self.identity,
            discovery=self.cfg["fabric"].get("discovery"),
        )
        return gw

    @contextmanager
    def acquire(self, org: str) -> Iterator[Gateway]:
        with self._lock:
            gw = self._gateways.get(org)
            if gw is not None and not self.wallet.exists(self.identity):
                self._retire(org, gw)
                raise IdentityNotFoundError(
                    f'An identity for the user "{self.identity}" does not exist in the wallet',
                    detail={"identity": self.identity},
                )
            if gw is None or not gw.is_connected:
                gw = self._connect(org)
                self._gateways[org] = gw
            self._users[gw] = self._users.get(gw, 0) + 1
        try:
            yield gw
        except GatewayError:
            with self._lock:
                if self._gateways.get(org) is gw:
                    self._retire(org, gw)
            raise
        finally:
            with self._lock:
                self._release(gw)

    @contextmanager
    def contract(self, org: str) -> Iterator[Contract]:
        with self.acquire(org) as gw:
            yield gw.get_network(self.channel).get_contract(self.chaincode)

    def _retire(self, org: str, gw: Gateway) -> None:
        # Callers hold self._lock. A gateway still in use by another request
        # keeps its MSP directory until that request releases it.
        self._gateways.pop(org, None)
        if self._users.get(gw):
            self._retired.add(gw)
            log.info("Retired pooled gateway for %s (%d user(s) left)", org, self._users[gw])
        else:
            gw.disconnect()
            log.info("Dropped pooled gateway for %s", org)

    def _release(self, gw: Gateway) -> None:
        left = self._users.get(gw, 1) - 1
        if left > 0:
            self._users[gw] = left
            return
        self._users.pop(gw, None)
        if gw in self._retired:
            self._retired.discard(gw)
            gw.disconnect()

    def in_use(self) -> int:
        with self._lock:
            return sum(self._users.values())

    def connected_orgs(self):
        with self._lock:
            return sorted(org for org, gw in self._gateways.items() if gw.is_connected)

    def close(self) -> None:
        with self._lock:
            for org, gw in list(self._gateways.items()):
                self._retire(org, gw)
