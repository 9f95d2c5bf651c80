# PATH: core/models.py
"""
Core data models for TRACE.

All models are frozen dataclasses. Amounts and prices are Decimal or int,
never float. Every model that leaves the engine has a to_dict() that is
JSON-safe (Decimals and big integers rendered as strings).

MOVE VALUE CONTRACT
===================
Resource payloads vary by module, so a value is one of:
  - KnownValue:  a struct the node decoded to JSON (dict of fields)
  - OpaqueValue: raw bytes the node did not decode

Diffing compares KnownValue field-by-field on dotted paths and falls back
to byte equality for OpaqueValue.
===================
"""

import json
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from core.constants import (
    DEFAULT_GAS_UNIT_PRICE,
    DEFAULT_MAX_GAS_AMOUNT,
    DEFAULT_REFERENCE_CURRENCY,
    DEFAULT_TIMEOUT_MS,
    AnnotationStatus,
    DiffKind,
    FlowDirection,
    OperationKind,
    SimulationStatus,
)
from core.math import sign
from core.time import usecs_to_seconds


def _decimal_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


# ============================================================================
# INTENT
# ============================================================================

@dataclass(frozen=True)
class MoveArgument:
    """A typed entry-function argument, e.g. MoveArgument("u64", "1")."""
    type_tag: str
    value: Any

    @classmethod
    def parse(cls, text: str) -> "MoveArgument":
        """
        Parse the CLI form "type:value".

        The separator is the first single colon, so struct tags work:
        "0x1::string::String:hello" -> ("0x1::string::String", "hello").
        Vector values are comma separated unless they are hex bytes:
        "vector<u64>:1,2,3", "vector<u8>:0xcafe".
        """
        idx = _find_type_separator(text)
        if idx < 0:
            raise ValueError(f"Argument must look like 'type:value', got {text!r}")
        type_tag, raw = text[:idx].strip(), text[idx + 1:]
        if not type_tag:
            raise ValueError(f"Argument has empty type: {text!r}")
        if type_tag.startswith("vector<") and type_tag != "vector<u8>":
            value: Any = [part.strip() for part in raw.split(",")] if raw else []
        else:
            value = raw
        return cls(type_tag=type_tag, value=value)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type_tag, "value": self.value}


def _find_type_separator(text: str) -> int:
    i = 0
    while i < len(text):
        if text[i] == ":":
            if i + 1 < len(text) and text[i + 1] == ":":
                i += 2
                continue
            return i
        i += 1
    return -1


@dataclass(frozen=True)
class TransactionIntent:
    """
    Unsigned description of an entry-function transaction.

    Immutable once constructed; list inputs are frozen to tuples.
    """
    sender: str
    function: str
    arguments: Tuple[MoveArgument, ...] = ()
    type_arguments: Tuple[str, ...] = ()
    max_gas_amount: int = DEFAULT_MAX_GAS_AMOUNT
    gas_unit_price: int = DEFAULT_GAS_UNIT_PRICE
    expiration_timestamp_secs: Optional[int] = None
    sender_public_key: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "type_arguments", tuple(self.type_arguments))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "function": self.function,
            "type_arguments": list(self.type_arguments),
            "arguments": [a.to_dict() for a in self.arguments],
            "max_gas_amount": self.max_gas_amount,
            "gas_unit_price": self.gas_unit_price,
            "expiration_timestamp_secs": self.expiration_timestamp_secs,
        }


@dataclass(frozen=True)
class TransactionEnvelope:
    """Intent plus the chain context needed for a syntactically valid transaction."""
    intent: TransactionIntent
    sequence_number: int
    chain_id: int
    expiration_timestamp_secs: int


# ============================================================================
# LEDGER / ACCOUNTS
# ============================================================================

@dataclass(frozen=True)
class LedgerInfo:
    """Ledger metadata from the node index endpoint."""
    chain_id: int
    ledger_version: int
    ledger_timestamp_usecs: int
    block_height: int = 0
    epoch: int = 0

    @property
    def timestamp_seconds(self) -> int:
        return usecs_to_seconds(self.ledger_timestamp_usecs)

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "LedgerInfo":
        return cls(
            chain_id=int(data["chain_id"]),
            ledger_version=int(data["ledger_version"]),
            ledger_timestamp_usecs=int(data["ledger_timestamp"]),
            block_height=int(data.get("block_height", 0)),
            epoch=int(data.get("epoch", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "ledger_version": str(self.ledger_version),
            "ledger_timestamp": str(self.ledger_timestamp_usecs),
            "block_height": str(self.block_height),
            "epoch": str(self.epoch),
        }


@dataclass(frozen=True)
class AccountInfo:
    """On-chain account record."""
    address: str
    sequence_number: int
    authentication_key: Optional[str] = None

    @classmethod
    def from_api(cls, address: str, data: Mapping[str, Any]) -> "AccountInfo":
        return cls(
            address=address,
            sequence_number=int(data["sequence_number"]),
            authentication_key=data.get("authentication_key"),
        )


# ============================================================================
# MOVE VALUES
# ============================================================================

@dataclass(frozen=True)
class KnownValue:
    """A decoded Move struct."""
    fields: Mapping[str, Any]

    def flatten(self) -> Dict[str, Any]:
        """Flatten nested structs to dotted paths. Lists are leaf values."""
        flat: Dict[str, Any] = {}
        _flatten_into(flat, "", self.fields)
        return flat

    def get_path(self, path: str) -> Any:
        node: Any = self.fields
        for part in path.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return None
            node = node[part]
        return node

    def render(self) -> Any:
        return self.fields


@dataclass(frozen=True)
class OpaqueValue:
    """Raw resource bytes, compared by equality only."""
    raw: bytes

    def render(self) -> str:
        return "0x" + self.raw.hex()


MoveValue = Union[KnownValue, OpaqueValue]


def _flatten_into(out: Dict[str, Any], prefix: str, node: Mapping[str, Any]) -> None:
    for key, value in node.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping) and value:
            _flatten_into(out, path, value)
        else:
            out[path] = value


def move_value_from_api(data: Any) -> MoveValue:
    """
    Build a MoveValue from a node payload.

    Dicts are decoded structs. Hex strings are raw bytes. Anything else is
    kept as canonical JSON bytes so equality still works.
    """
    if isinstance(data, Mapping):
        return KnownValue(fields=data)
    if isinstance(data, str) and data.startswith("0x"):
        try:
            return OpaqueValue(raw=bytes.fromhex(data[2:]))
        except ValueError:
            pass
    return OpaqueValue(raw=json.dumps(data, sort_keys=True).encode("utf-8"))


@dataclass(frozen=True)
class ResourceSnapshot:
    """A resource as stored at some ledger version."""
    address: str
    type_tag: str
    value: MoveValue


# ============================================================================
# RAW SIMULATION
# ============================================================================

@dataclass(frozen=True)
class WriteSetEntry:
    """One resource-level write reported by a simulation."""
    address: str
    type_tag: str
    operation: OperationKind
    before: Optional[MoveValue] = None
    after: Optional[MoveValue] = None

    def with_before(self, before: Optional[MoveValue]) -> "WriteSetEntry":
        """Attach the pre-state; a write onto nothing is a creation."""
        if self.operation == OperationKind.DELETE:
            return replace(self, before=before)
        operation = OperationKind.MODIFY if before is not None else OperationKind.CREATE
        return replace(self, before=before, operation=operation)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.address, self.type_tag)


@dataclass(frozen=True)
class EmittedEvent:
    """An event emitted by the simulated transaction."""
    type_tag: str
    data: Any
    sequence_number: int = 0
    account_address: Optional[str] = None
    creation_number: Optional[int] = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "EmittedEvent":
        guid = data.get("guid") or {}
        creation = guid.get("creation_number")
        return cls(
            type_tag=data["type"],
            data=data.get("data"),
            sequence_number=int(data.get("sequence_number", 0)),
            account_address=guid.get("account_address"),
            creation_number=int(creation) if creation is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type_tag,
            "data": self.data,
            "sequence_number": str(self.sequence_number),
            "account_address": self.account_address,
        }


@dataclass(frozen=True)
class RawSimulationResult:
    """Parsed response of the node simulate endpoint."""
    success: bool
    vm_status: str
    gas_used: int
    gas_unit_price: int = 0
    max_gas_amount: int = 0
    hash: Optional[str] = None
    events: Tuple[EmittedEvent, ...] = ()
    write_set: Tuple[WriteSetEntry, ...] = ()
    skipped_changes: int = 0
    version: Optional[int] = None

    @property
    def pre_state_version(self) -> Optional[int]:
        """Ledger version the node executed against, when the response carries one."""
        if self.version is None or self.version < 1:
            return None
        return self.version - 1


# ============================================================================
# EFFECT DIFF
# ============================================================================

@dataclass(frozen=True)
class FieldChange:
    """
    One field-level change. None means "absent on that side".

    Move JSON has no null, so None is never a real field value.
    """
    path: str
    old: Any = None
    new: Any = None

    def __post_init__(self):
        if self.old is None and self.new is None:
            raise ValueError(f"FieldChange {self.path!r} has neither old nor new value")

    @property
    def is_addition(self) -> bool:
        return self.old is None

    @property
    def is_removal(self) -> bool:
        return self.new is None

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "old": self.old, "new": self.new}


@dataclass(frozen=True)
class EffectDiffEntry:
    """Structured before/after delta of one resource."""
    address: str
    type_tag: str
    kind: DiffKind
    changes: Tuple[FieldChange, ...] = ()
    balance_path: Optional[str] = None
    asset_key: Optional[str] = None

    @property
    def balance_delta(self) -> Optional[int]:
        """Signed integer delta of the balance field (balance-change only)."""
        if self.kind != DiffKind.BALANCE_CHANGE or self.balance_path is None:
            return None
        for change in self.changes:
            if change.path == self.balance_path:
                return int(change.new) - int(change.old)
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "address": self.address,
            "type": self.type_tag,
            "kind": self.kind.value,
            "changes": [c.to_dict() for c in self.changes],
        }
        if self.kind == DiffKind.BALANCE_CHANGE:
            data["balance_path"] = self.balance_path
            data["asset_key"] = self.asset_key
            data["balance_delta"] = str(self.balance_delta)
        return data


@dataclass(frozen=True)
class EffectDiff:
    """Ordered diff entries plus emitted events as auxiliary context."""
    entries: Tuple[EffectDiffEntry, ...] = ()
    events: Tuple[EmittedEvent, ...] = ()

    def __iter__(self) -> Iterator[EffectDiffEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def of_kind(self, kind: DiffKind) -> List[EffectDiffEntry]:
        return [e for e in self.entries if e.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "events": [e.to_dict() for e in self.events],
        }


# ============================================================================
# PRICES / VALUATION
# ============================================================================

@dataclass(frozen=True)
class AssetInfo:
    """Registry record for a priced asset."""
    symbol: str
    decimals: int
    feed_id: Optional[str] = None
    coin_types: Tuple[str, ...] = ()
    fa_metadata: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PriceQuote:
    """A timestamped price observation. Never mutated, only superseded."""
    asset_id: str
    price: Decimal
    confidence: Decimal
    publish_time: int
    feed_id: Optional[str] = None

    def age_at(self, timestamp: int) -> int:
        """Seconds between publish time and timestamp (negative if published after)."""
        return timestamp - self.publish_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "price": str(self.price),
            "confidence": str(self.confidence),
            "publish_time": self.publish_time,
            "feed_id": self.feed_id,
        }


@dataclass(frozen=True)
class ValuationAnnotation:
    """
    Oracle-derived value context for one balance-change entry.

    unit_price and value_delta are None unless status is PRICED, so a
    missing quote can never be mistaken for a zero value change.
    """
    asset_id: str
    address: str
    type_tag: str
    raw_delta: int
    quantity_delta: Decimal
    reference_currency: str
    status: AnnotationStatus
    unit_price: Optional[Decimal] = None
    price_staleness_seconds: Optional[int] = None
    value_delta: Optional[Decimal] = None
    reason: Optional[str] = None

    def __post_init__(self):
        if sign(self.quantity_delta) != sign(self.raw_delta):
            raise ValueError(
                f"quantity delta {self.quantity_delta} does not match sign of raw delta {self.raw_delta}"
            )
        priced = self.status == AnnotationStatus.PRICED
        if priced and (self.unit_price is None or self.value_delta is None):
            raise ValueError("priced annotation requires unit_price and value_delta")
        if not priced and (self.unit_price is not None or self.value_delta is not None):
            raise ValueError(f"{self.status.value} annotation must not carry a price")

    @property
    def has_value(self) -> bool:
        return self.status == AnnotationStatus.PRICED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "address": self.address,
            "type": self.type_tag,
            "raw_delta": str(self.raw_delta),
            "quantity_delta": str(self.quantity_delta),
            "reference_currency": self.reference_currency,
            "status": self.status.value,
            "unit_price": _decimal_str(self.unit_price),
            "price_staleness_seconds": self.price_staleness_seconds,
            "value_delta": _decimal_str(self.value_delta),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class AssetFlow:
    """Asset movement read from deposit/withdraw events."""
    account: str
    asset: str
    amount: int
    direction: FlowDirection

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "asset": self.asset,
            "amount": str(self.amount),
            "direction": self.direction.value,
        }


# ============================================================================
# REQUEST / REPORT
# ============================================================================

@dataclass(frozen=True)
class SimulationOptions:
    """Per-request options."""
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    skip_cache: bool = False
    reference_currency: str = DEFAULT_REFERENCE_CURRENCY

    def __post_init__(self):
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


@dataclass(frozen=True)
class SimulationReport:
    """
    Composed result of one simulation.

    status=FAILED means the node executed the transaction and the VM
    failed it. Not being able to simulate at all is raised, never reported.
    """
    status: SimulationStatus
    vm_status: str
    gas_used: int
    gas_unit_price: int
    diff: EffectDiff
    annotations: Tuple[ValuationAnnotation, ...]
    ledger: LedgerInfo
    fingerprint: str
    sequence_number: int
    sender_exists: bool = True
    asset_flows: Tuple[AssetFlow, ...] = ()
    skipped_changes: int = 0
    transaction_hash: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status == SimulationStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "vm_status": self.vm_status,
            "gas_used": str(self.gas_used),
            "gas_unit_price": str(self.gas_unit_price),
            "fingerprint": self.fingerprint,
            "sequence_number": str(self.sequence_number),
            "sender_exists": self.sender_exists,
            "transaction_hash": self.transaction_hash,
            "ledger": self.ledger.to_dict(),
            "diff": self.diff.to_dict(),
            "annotations": [a.to_dict() for a in self.annotations],
            "asset_flows": [f.to_dict() for f in self.asset_flows],
            "skipped_changes": self.skipped_changes,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of simulate-then-submit."""
    report: SimulationReport
    submitted: bool
    transaction_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submitted": self.submitted,
            "transaction_hash": self.transaction_hash,
            "report": self.report.to_dict(),
        }
