"""
chains/aptos.py - Fullnode REST client.

Provides access to an Aptos-compatible fullnode with:
- Per-call timeouts (caller supplied, client default otherwise)
- Connection pooling
- Latency and error tracking
- Typed failure mapping:
    transport / timeout / 5xx / 429 -> UpstreamUnavailable (transient)
    well-formed 4xx on simulate      -> SimulationRejected (terminal)

The client holds no chain state. Every call is independent, and none of
them (apart from submit_signed) can change the chain.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import httpx

from chains.envelope import render_simulation_body
from core.constants import (
    NOT_FOUND_ERROR_CODES,
    SIGNED_TRANSACTION_CONTENT_TYPE,
    ErrorCode,
    OperationKind,
)
from core.exceptions import SimulationRejected, UpstreamUnavailable
from core.logging import get_logger
from core.models import (
    AccountInfo,
    EmittedEvent,
    LedgerInfo,
    RawSimulationResult,
    ResourceSnapshot,
    TransactionEnvelope,
    WriteSetEntry,
    move_value_from_api,
)
from core.validators import normalize_address

logger = get_logger(__name__)


@dataclass
class NodeStats:
    """Statistics for a fullnode endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    def record_success(self, latency_ms: int) -> None:
        self.successful_requests += 1
        self.total_latency_ms += latency_ms
        self.last_success_ts = int(time.time() * 1000)

    def record_failure(self, error: str) -> None:
        self.failed_requests += 1
        self.last_error = error


@dataclass
class NodeResponse:
    """Decoded response from the node."""
    status_code: int
    body: Any
    latency_ms: int


def _node_error_fields(body: Any) -> tuple[str, Optional[str], Optional[int]]:
    if isinstance(body, dict):
        vm_code = body.get("vm_error_code")
        return (
            str(body.get("message", body)),
            body.get("error_code"),
            int(vm_code) if vm_code is not None else None,
        )
    return (str(body), None, None)


class AptosClient:
    """
    Async client for the fullnode /v1 REST surface.

    Usage:
        async with AptosClient("https://full.mainnet.movementinfra.xyz/v1") as node:
            ledger = await node.get_ledger_info(timeout=2.0)
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.stats = NodeStats(url=self.base_url)

    async def __aenter__(self) -> "AptosClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=20),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> NodeResponse:
        """
        Send one request. Returns 2xx and 4xx responses, raises otherwise.

        Raises:
            UpstreamUnavailable: timeout, transport failure, 5xx, 429,
                or a body that is not JSON
        """
        client = await self._get_client()
        self.stats.total_requests += 1
        start = time.monotonic()
        request_timeout = httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT

        try:
            resp = await client.request(
                method,
                path,
                params=params,
                json=json,
                content=content,
                headers=headers,
                timeout=request_timeout,
            )
        except httpx.TimeoutException as e:
            latency_ms = int((time.monotonic() - start) * 1000)
            self.stats.record_failure(f"Timeout after {latency_ms}ms")
            logger.warning(
                "Node request timed out",
                extra={"context": {"path": path, "latency_ms": latency_ms}},
            )
            raise UpstreamUnavailable(
                f"Node request timed out: {method} {path}",
                code=ErrorCode.INFRA_TIMEOUT,
                details={"url": self.base_url, "path": path, "latency_ms": latency_ms},
            ) from e
        except httpx.TransportError as e:
            self.stats.record_failure(str(e))
            logger.warning(
                "Node transport failure",
                extra={"context": {"path": path, "error": str(e)}},
            )
            raise UpstreamUnavailable(
                f"Node transport failure: {e}",
                code=ErrorCode.INFRA_TRANSPORT,
                details={"url": self.base_url, "path": path},
            ) from e

        latency_ms = int((time.monotonic() - start) * 1000)

        if resp.status_code >= 500 or resp.status_code == 429:
            self.stats.record_failure(f"HTTP {resp.status_code}")
            raise UpstreamUnavailable(
                f"Node returned HTTP {resp.status_code} for {method} {path}",
                code=ErrorCode.INFRA_HTTP_ERROR,
                details={"url": self.base_url, "path": path, "status_code": resp.status_code},
            )

        try:
            body = resp.json() if resp.content else None
        except ValueError as e:
            self.stats.record_failure("Invalid JSON")
            raise UpstreamUnavailable(
                f"Node returned a non-JSON body for {method} {path}",
                code=ErrorCode.INFRA_BAD_RESPONSE,
                details={"url": self.base_url, "path": path, "status_code": resp.status_code},
            ) from e

        # A 4xx is the node's verdict, not an outage
        self.stats.record_success(latency_ms)

        logger.debug(
            "Node request",
            extra={"context": {"method": method, "path": path, "status": resp.status_code, "latency_ms": latency_ms}},
        )
        return NodeResponse(status_code=resp.status_code, body=body, latency_ms=latency_ms)

    def _read_failure(self, response: NodeResponse, path: str) -> UpstreamUnavailable:
        message, error_code, vm_error_code = _node_error_fields(response.body)
        return UpstreamUnavailable(
            f"Node refused read {path}: {message}",
            code=ErrorCode.INFRA_HTTP_ERROR,
            details={
                "path": path,
                "status_code": response.status_code,
                "error_code": error_code,
                "vm_error_code": vm_error_code,
            },
        )

    @staticmethod
    def _rejection(response: NodeResponse) -> SimulationRejected:
        message, error_code, vm_error_code = _node_error_fields(response.body)
        return SimulationRejected(
            message,
            status_code=response.status_code,
            error_code=error_code,
            vm_error_code=vm_error_code,
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_ledger_info(self, timeout: Optional[float] = None) -> LedgerInfo:
        """Fetch chain id, ledger version and ledger timestamp."""
        response = await self._request("GET", "/", timeout=timeout)
        if response.status_code >= 400:
            raise self._read_failure(response, "/")
        try:
            return LedgerInfo.from_api(response.body)
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(
                f"Malformed ledger info: {e}",
                code=ErrorCode.INFRA_BAD_RESPONSE,
            ) from e

    async def get_account(
        self,
        address: str,
        ledger_version: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Optional[AccountInfo]:
        """
        Fetch an account record.

        Returns:
            AccountInfo, or None when the account does not exist yet
        """
        address = normalize_address(address)
        path = f"/accounts/{address}"
        params = {"ledger_version": str(ledger_version)} if ledger_version is not None else None
        response = await self._request("GET", path, params=params, timeout=timeout)
        if response.status_code == 404 and self._is_not_found(response):
            return None
        if response.status_code >= 400:
            raise self._read_failure(response, path)
        return AccountInfo.from_api(address, response.body)

    async def get_resource(
        self,
        address: str,
        resource_type: str,
        ledger_version: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Optional[ResourceSnapshot]:
        """Fetch one resource, or None if nothing is stored under that type."""
        address = normalize_address(address)
        path = f"/accounts/{address}/resource/{quote(resource_type, safe='')}"
        params = {"ledger_version": str(ledger_version)} if ledger_version is not None else None
        response = await self._request("GET", path, params=params, timeout=timeout)
        if response.status_code == 404 and self._is_not_found(response):
            return None
        if response.status_code >= 400:
            raise self._read_failure(response, path)
        body = response.body or {}
        return ResourceSnapshot(
            address=address,
            type_tag=resource_type,
            value=move_value_from_api(body.get("data")),
        )

    async def get_account_state(
        self,
        address: str,
        resource_types: Iterable[str],
        ledger_version: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[ResourceSnapshot]:
        """
        Fetch several resources of one account at a ledger version.

        Lookups run concurrently. Resources that do not exist (including
        every resource of an account that does not exist) are omitted.
        Result order follows resource_types.
        """
        types = list(dict.fromkeys(resource_types))
        snapshots = await asyncio.gather(*(
            self.get_resource(address, t, ledger_version=ledger_version, timeout=timeout)
            for t in types
        ))
        return [s for s in snapshots if s is not None]

    @staticmethod
    def _is_not_found(response: NodeResponse) -> bool:
        """Only the node's own not-found codes count; a bare 404 (proxy, bad route) is a failure."""
        body = response.body
        return isinstance(body, dict) and body.get("error_code") in NOT_FOUND_ERROR_CODES

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def simulate(
        self,
        envelope: TransactionEnvelope,
        timeout: Optional[float] = None,
    ) -> RawSimulationResult:
        """
        Simulate a transaction envelope.

        A VM failure (abort, out of gas) is a normal result with
        success=False. Only a node refusal raises SimulationRejected.

        Raises:
            UpstreamUnavailable: transport failure or timeout
            SimulationRejected: node rejected the transaction (e.g. bad
                sequence number, insufficient balance for gas)
        """
        body = render_simulation_body(envelope)
        response = await self._request(
            "POST",
            "/transactions/simulate",
            json=body,
            timeout=timeout,
        )
        if response.status_code >= 400:
            rejection = self._rejection(response)
            logger.info(
                "Simulation rejected by node",
                extra={"context": {
                    "status_code": rejection.status_code,
                    "error_code": rejection.error_code,
                    "vm_error_code": rejection.vm_error_code,
                }},
            )
            raise rejection
        return parse_simulation_response(response.body)

    async def view(
        self,
        function: str,
        type_arguments: Iterable[str] = (),
        arguments: Iterable[Any] = (),
        ledger_version: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[Any]:
        """
        Call a view function (read-only, no gas).

        Raises:
            SimulationRejected: the function aborted or the call was invalid
        """
        params = {"ledger_version": str(ledger_version)} if ledger_version is not None else None
        response = await self._request(
            "POST",
            "/view",
            params=params,
            json={
                "function": function,
                "type_arguments": list(type_arguments),
                "arguments": list(arguments),
            },
            timeout=timeout,
        )
        if response.status_code >= 400:
            raise self._rejection(response)
        return list(response.body or [])

    async def submit_signed(
        self,
        signed_transaction: bytes,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Submit a BCS-encoded signed transaction.

        Returns:
            Pending transaction hash
        """
        response = await self._request(
            "POST",
            "/transactions",
            content=signed_transaction,
            headers={"Content-Type": SIGNED_TRANSACTION_CONTENT_TYPE},
            timeout=timeout,
        )
        if response.status_code >= 400:
            raise self._rejection(response)
        return str((response.body or {}).get("hash", ""))

    def get_stats_summary(self) -> dict:
        """Get statistics summary for the endpoint."""
        s = self.stats
        return {
            "url": s.url,
            "total_requests": s.total_requests,
            "success_rate": round(s.success_rate, 3),
            "avg_latency_ms": s.avg_latency_ms,
            "last_error": s.last_error,
        }


def parse_simulation_response(payload: Any) -> RawSimulationResult:
    """
    Parse the simulate endpoint's user transaction.

    write_resource and delete_resource become write-set entries with no
    before-snapshot. Table items and modules are counted as skipped.
    """
    txn = payload[0] if isinstance(payload, list) and payload else payload
    if not isinstance(txn, dict):
        raise UpstreamUnavailable(
            "Simulate endpoint returned no transaction",
            code=ErrorCode.INFRA_BAD_RESPONSE,
        )

    write_set: List[WriteSetEntry] = []
    skipped = 0
    try:
        for change in txn.get("changes") or []:
            change_type = change.get("type")
            if change_type == "write_resource":
                data = change.get("data") or {}
                write_set.append(WriteSetEntry(
                    address=normalize_address(change["address"]),
                    type_tag=data["type"],
                    operation=OperationKind.MODIFY,
                    after=move_value_from_api(data.get("data")),
                ))
            elif change_type == "delete_resource":
                write_set.append(WriteSetEntry(
                    address=normalize_address(change["address"]),
                    type_tag=change["resource"],
                    operation=OperationKind.DELETE,
                ))
            else:
                skipped += 1

        return RawSimulationResult(
            success=bool(txn.get("success")),
            vm_status=str(txn.get("vm_status", "")),
            gas_used=int(txn.get("gas_used", 0)),
            gas_unit_price=int(txn.get("gas_unit_price", 0)),
            max_gas_amount=int(txn.get("max_gas_amount", 0)),
            hash=txn.get("hash"),
            events=tuple(EmittedEvent.from_api(e) for e in txn.get("events") or []),
            write_set=tuple(write_set),
            skipped_changes=skipped,
            version=int(txn["version"]) if txn.get("version") is not None else None,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamUnavailable(
            f"Malformed simulation response: {e}",
            code=ErrorCode.INFRA_BAD_RESPONSE,
        ) from e
