"""
chains/envelope.py - Transaction envelope rendering.

Turns a TransactionIntent plus resolved chain context into the JSON body
accepted by the fullnode simulate endpoint.

SIMULATION SIGNATURE CONTRACT:
  - sender_public_key present -> ed25519 signature of 64 zero bytes.
    The node rejects simulations carrying a valid signature, and the
    public key must still derive the sender's authentication key.
  - no public key -> "no_account_signature" authenticator, which lets the
    node skip the authentication-key check for simulation.
  The signer collaborator is never involved.
"""

from typing import Any, Dict, Optional

from core.constants import DEFAULT_EXPIRATION_SECONDS
from core.models import LedgerInfo, TransactionEnvelope, TransactionIntent
from core.validators import normalize_address, split_type_tag

ZERO_SIGNATURE = "0x" + "00" * 64

_SMALL_INTS = ("u8", "u16", "u32")
_BIG_INTS = ("u64", "u128", "u256")


def encode_argument(type_tag: str, value: Any) -> Any:
    """
    Encode one entry-function argument as the node's JSON form.

    u8/u16/u32 are JSON numbers; u64 and wider are decimal strings because
    JSON numbers lose precision past 2^53.
    """
    if type_tag in _SMALL_INTS:
        return int(value)
    if type_tag in _BIG_INTS:
        return str(int(value))
    if type_tag == "bool":
        if isinstance(value, bool):
            return value
        return str(value).lower() == "true"
    if type_tag in ("address", "signer"):
        return str(value).lower()
    if type_tag == "vector<u8>":
        if isinstance(value, str):
            return value.lower()
        return "0x" + bytes(int(b) for b in value).hex()
    if type_tag.startswith("vector<"):
        _, inner = split_type_tag(type_tag)
        return [encode_argument(inner[0], item) for item in value]
    return value


def simulation_signature(public_key: Optional[str]) -> Dict[str, str]:
    """Authenticator for an unsigned simulation."""
    if public_key:
        return {
            "type": "ed25519_signature",
            "public_key": public_key.lower(),
            "signature": ZERO_SIGNATURE,
        }
    return {"type": "no_account_signature"}


def build_envelope(
    intent: TransactionIntent,
    sequence_number: int,
    ledger: LedgerInfo,
    expiration_seconds: int = DEFAULT_EXPIRATION_SECONDS,
) -> TransactionEnvelope:
    """
    Resolve chain context for an intent.

    Expiration defaults to ledger time plus expiration_seconds so it is
    valid relative to the node's clock rather than ours.
    """
    expiration = intent.expiration_timestamp_secs
    if expiration is None:
        expiration = ledger.timestamp_seconds + expiration_seconds
    return TransactionEnvelope(
        intent=intent,
        sequence_number=sequence_number,
        chain_id=ledger.chain_id,
        expiration_timestamp_secs=expiration,
    )


def render_payload(intent: TransactionIntent) -> Dict[str, Any]:
    return {
        "type": "entry_function_payload",
        "function": intent.function,
        "type_arguments": list(intent.type_arguments),
        "arguments": [encode_argument(a.type_tag, a.value) for a in intent.arguments],
    }


def render_simulation_body(envelope: TransactionEnvelope) -> Dict[str, Any]:
    """JSON body for POST /transactions/simulate."""
    intent = envelope.intent
    return {
        "sender": normalize_address(intent.sender),
        "sequence_number": str(envelope.sequence_number),
        "max_gas_amount": str(intent.max_gas_amount),
        "gas_unit_price": str(intent.gas_unit_price),
        "expiration_timestamp_secs": str(envelope.expiration_timestamp_secs),
        "payload": render_payload(intent),
        "signature": simulation_signature(intent.sender_public_key),
    }
