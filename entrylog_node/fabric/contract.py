from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

from .peer_cli import InvokeResult

if TYPE_CHECKING:
    from .gateway import Network


class Contract:
    """A chaincode on a channel, reached through its Network's gateway.

    evaluate_transaction() runs on one peer of the client organization and is
    never ordered. submit_transaction() is endorsed, ordered and waited on
    until the commit event arrives.
    """

    def __init__(self, network: "Network", cc_name: str):
        self.network = network
        self.cc_name = cc_name

    def evaluate_transaction(self, name: str, *args: str) -> bytes:
        gw = self.network.gateway
        return gw.peer_cli.query(
            gw.context(),
            self.network.name,
            self.cc_name,
            name,
            [str(a) for a in args],
        )

    def submit_transaction(
        self,
        name: str,
        *args: str,
        transient: Optional[Dict[str, str]] = None,
    ) -> InvokeResult:
        gw = self.network.gateway
        return gw.peer_cli.invoke(
            gw.context(),
            self.network.name,
            self.cc_name,
            name,
            [str(a) for a in args],
            orderer=gw.orderer(),
            endorsers=gw.endorsers(),
            transient=transient,
        )

    def create_transaction(self, name: str) -> "Transaction":
        return Transaction(self, name)


class Transaction:
    """Builder form: contract.create_transaction("setEntryLog").set_transient(t).submit()"""

    def __init__(self, contract: Contract, name: str):
        self.contract = contract
        self.name = name
        self._transient: Optional[Dict[str, str]] = None

    def set_transient(self, transient: Dict[str, str]) -> "Transaction":
        self._transient = dict(transient)
        return self

    def submit(self, *args: str) -> InvokeResult:
        return self.contract.submit_transaction(self.name, *args, transient=self._transient)

    def evaluate(self, *args: str) -> bytes:
        return self.contract.evaluate_transaction(self.name, *args)
