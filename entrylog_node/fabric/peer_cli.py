"""
Thin runner around the Fabric `peer` binary.

    peer chaincode query  -C <channel> -n <cc> -c '{"function":..,"Args":[..]}'
    peer chaincode invoke -o <orderer> --tls --cafile <ca> -C .. -n .. -c ..
                          --transient '{"entryLog":"<base64>"}' --waitForEvent
                          --peerAddresses <addr> --tlsRootCertFiles <ca> ...

Identity and target peer are passed through the CORE_PEER_* environment.
Failures are classified into GatewayError (cannot reach the network),
GatewayTimeoutError, and TransactionError (the chaincode or the
orderer said no).
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..errors import GatewayError, GatewayTimeoutError, TransactionError

log = logging.getLogger(__name__)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

_TXID_PATTERNS = [
    r"txid\s*\[([0-9a-fA-F]{64})\]",
    r"txid\s*:\s*([0-9a-fA-F]{64})",
    r"Transaction ID\s*[:\-]?\s*([0-9a-fA-F]{64})",
]

_COMMIT_STATUS = re.compile(r"committed with status \((\w+)\)")
_CHAINCODE_MESSAGE = re.compile(r'message:"((?:[^"\\]|\\.)*)"')

# stderr fragments meaning "could not talk to the network" rather than "rejected"
_UNREACHABLE = (
    "failed to create new connection",
    "connection refused",
    "context deadline exceeded",
    "error getting endorser client",
    "error getting broadcast client",
    "cannot run peer because",
)


@dataclass
class PeerTarget:
    address: str
    tls_ca_file: Optional[str] = None
    hostname_override: Optional[str] = None


@dataclass
class PeerContext:
    """Who signs and which peer answers."""

    msp_id: str
    msp_dir: str
    peer: PeerTarget
    tls: bool = True


@dataclass
class InvokeResult:
    tx_id: Optional[str]
    status: str = "VALID"
    output: str = ""


@dataclass
class PeerCLI:
    peer_bin: str = "peer"
    fabric_cfg_path: str = ""
    timeout: float = 60.0
    extra_env: Dict[str, str] = field(default_factory=dict)

    # ---------------------------------------------------------------
    # environment & command building
    # ---------------------------------------------------------------
    def env(self, ctx: PeerContext) -> Dict[str, str]:
        env = {
            **os.environ,
            **self.extra_env,
            "CORE_PEER_LOCALMSPID": ctx.msp_id,
            "CORE_PEER_MSPCONFIGPATH": ctx.msp_dir,
            "CORE_PEER_ADDRESS": ctx.peer.address,
            "CORE_PEER_TLS_ENABLED": "true" if ctx.tls else "false",
        }
        if self.fabric_cfg_path:
            env["FABRIC_CFG_PATH"] = self.fabric_cfg_path
        if ctx.tls and ctx.peer.tls_ca_file:
            env["CORE_PEER_TLS_ROOTCERT_FILE"] = ctx.peer.tls_ca_file
        if ctx.peer.hostname_override:
            env["CORE_PEER_TLS_SERVERHOSTOVERRIDE"] = ctx.peer.hostname_override
        return env

    @staticmethod
    def ctor(function: str, args: Sequence[str]) -> str:
        return json.dumps({"function": function, "Args": [str(a) for a in args]}, ensure_ascii=False)

    def query_command(self, channel: str, chaincode: str, function: str, args: Sequence[str]) -> List[str]:
        return [
            self.peer_bin, "chaincode", "query",
            "-C", channel, "-n", chaincode,
            "-c", self.ctor(function, args),
        ]

    def invoke_command(
        self,
        ctx: PeerContext,
        channel: str,
        chaincode: str,
        function: str,
        args: Sequence[str],
        *,
        orderer: PeerTarget,
        endorsers: Sequence[PeerTarget],
        transient: Optional[Dict[str, str]] = None,
    ) -> List[str]:
        cmd = [self.peer_bin, "chaincode", "invoke", "-o", orderer.address]
        if orderer.hostname_override:
            cmd += ["--ordererTLSHostnameOverride", orderer.hostname_override]
        if ctx.tls:
            cmd += ["--tls"]
            if orderer.tls_ca_file:
                cmd += ["--cafile", orderer.tls_ca_file]
        cmd += ["-C", channel, "-n", chaincode, "-c", self.ctor(function, args)]
        if transient:
            cmd += ["--transient", json.dumps(transient)]
        cmd += ["--waitForEvent"]
        for peer in endorsers:
            cmd += ["--peerAddresses", peer.address]
            if ctx.tls and peer.tls_ca_file:
                cmd += ["--tlsRootCertFiles", peer.tls_ca_file]
        return cmd

    # ---------------------------------------------------------------
    # execution
    # ---------------------------------------------------------------
    def _run(self, cmd: List[str], env: Dict[str, str], what: str) -> subprocess.CompletedProcess:
        try:
            r = subprocess.run(cmd, env=env, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError:
            raise GatewayError(f"peer binary not found: {self.peer_bin}")
        except subprocess.TimeoutExpired:
            raise GatewayTimeoutError(f"{what} timed out after {self.timeout:g}s")
        if r.returncode != 0:
            raise classify_failure(what, r.stdout or "", r.stderr or "")
        return r

    def query(
        self,
        ctx: PeerContext,
        channel: str,
        chaincode: str,
        function: str,
        args: Sequence[str] = (),
    ) -> bytes:
        cmd = self.query_command(channel, chaincode, function, args)
        log.debug("peer query %s%s on %s", function, list(args), ctx.peer.address)
        r = self._run(cmd, self.env(ctx), f"query {function}")
        return (r.stdout or "").rstrip("\n").encode("utf-8")

    def invoke(
        self,
        ctx: PeerContext,
        channel: str,
        chaincode: str,
        function: str,
        args: Sequence[str] = (),
        *,
        orderer: PeerTarget,
        endorsers: Sequence[PeerTarget],
        transient: Optional[Dict[str, str]] = None,
    ) -> InvokeResult:
        cmd = self.invoke_command(
            ctx, channel, chaincode, function, args,
            orderer=orderer, endorsers=endorsers, transient=transient,
        )
        log.debug("peer invoke %s on %d endorser(s)", function, len(endorsers))
        r = self._run(cmd, self.env(ctx), f"invoke {function}")
        out = _ANSI.sub("", (r.stdout or "") + "\n" + (r.stderr or ""))

        m = _COMMIT_STATUS.search(out)
        status = m.group(1) if m else "VALID"
        tx_id = extract_txid(out)
        if status != "VALID":
            raise TransactionError(
                f"invoke {function}: transaction {tx_id or '?'} committed as {status}",
                detail={"txId": tx_id, "status": status},
            )
        return InvokeResult(tx_id=tx_id, status=status, output=out)


def extract_txid(output: str) -> Optional[str]:
    for pat in _TXID_PATTERNS:
        m = re.search(pat, output, re.IGNORECASE)
        if m:
            return m.group(1)
    return None


def classify_failure(what: str, stdout: str, stderr: str):
    text = _ANSI.sub("", (stderr or "") + "\n" + (stdout or "")).strip()
    lowered = text.lower()
    if any(marker in lowered for marker in _UNREACHABLE):
        return GatewayError(f"{what}: network unreachable: {_last_error_line(text)}")
    m = _CHAINCODE_MESSAGE.search(text)
    message = m.group(1).replace('\\"', '"') if m else _last_error_line(text)
    return TransactionError(f"{what}: {message}", detail={"output": text[-2000:]})


def _last_error_line(text: str) -> str:
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    for ln in reversed(lines):
        if ln.startswith("Error:"):
            return ln[len("Error:"):].strip()
    return lines[-1] if lines else "unknown error"
