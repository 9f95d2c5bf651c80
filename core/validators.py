# PATH: core/validators.py
"""
Validators and Move identifier helpers for TRACE.

CONTRACTS:
- normalize_address(): AIP-40 form. Special addresses (0x0..0xf) are short
  ("0x1"), everything else is 64 lowercase hex digits.
- split_type_tag(): "0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>"
  -> ("0x1::coin::CoinStore", ["0x1::aptos_coin::AptosCoin"])
- validate_intent(): raises MalformedIntent before any network call.
"""

import re
from typing import List, Optional, Tuple

from core.constants import MAX_GAS_AMOUNT_CAP
from core.exceptions import MalformedIntent
from core.models import TransactionIntent

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_HEX_BYTES_RE = re.compile(r"^0x([0-9a-fA-F]{2})*$")

_PRIMITIVE_INT_BITS = {"u8": 8, "u16": 16, "u32": 32, "u64": 64, "u128": 128, "u256": 256}


# =============================================================================
# ADDRESSES AND IDENTIFIERS
# =============================================================================

def is_valid_address(address: str) -> bool:
    return isinstance(address, str) and bool(_HEX_RE.match(address))


def normalize_address(address: str) -> str:
    """
    Normalize an account address.

    Raises:
        ValueError: if the address is not 1-64 hex digits with a 0x prefix
    """
    if not is_valid_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    value = int(address, 16)
    if value < 16:
        return hex(value)
    return "0x" + format(value, "064x")


def parse_function_id(function_id: str) -> Tuple[str, str, str]:
    """
    Split "address::module::function".

    Raises:
        ValueError: if any part is malformed
    """
    parts = function_id.split("::")
    if len(parts) != 3:
        raise ValueError(f"Function id must be address::module::function, got {function_id!r}")
    address, module, name = parts
    if not is_valid_address(address):
        raise ValueError(f"Invalid module address in {function_id!r}")
    if not _IDENT_RE.match(module) or not _IDENT_RE.match(name):
        raise ValueError(f"Invalid module or function name in {function_id!r}")
    return address, module, name


def split_type_tag(type_tag: str) -> Tuple[str, List[str]]:
    """Split a struct tag into its base and top-level generic arguments."""
    tag = type_tag.strip()
    start = tag.find("<")
    if start < 0:
        return tag, []
    if not tag.endswith(">"):
        raise ValueError(f"Unbalanced generics in type tag {type_tag!r}")

    args: List[str] = []
    depth = 0
    current = []
    for ch in tag[start + 1:-1]:
        if ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
        if ch == "," and depth == 0:
            args.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    if depth != 0:
        raise ValueError(f"Unbalanced generics in type tag {type_tag!r}")
    if current:
        args.append("".join(current).strip())
    return tag[:start], args


def struct_base(type_tag: str) -> str:
    """Struct tag without generics and with a normalized address."""
    base, _ = split_type_tag(type_tag)
    parts = base.split("::")
    if len(parts) == 3 and is_valid_address(parts[0]):
        parts[0] = normalize_address(parts[0])
    return "::".join(parts)


def is_struct_tag(type_tag: str) -> bool:
    base, _ = split_type_tag(type_tag)
    parts = base.split("::")
    return (
        len(parts) == 3
        and is_valid_address(parts[0])
        and all(_IDENT_RE.match(p) for p in parts[1:])
    )


# =============================================================================
# ARGUMENTS
# =============================================================================

def check_argument(type_tag: str, value) -> None:
    """
    Check that a value can be encoded as the given Move type.

    Raises:
        ValueError: with a description of the mismatch
    """
    if type_tag in _PRIMITIVE_INT_BITS:
        text = str(value)
        if isinstance(value, bool) or not text.isdigit():
            raise ValueError(f"{type_tag} expects an unsigned integer, got {value!r}")
        if int(text) >= 2 ** _PRIMITIVE_INT_BITS[type_tag]:
            raise ValueError(f"{value} overflows {type_tag}")
        return

    if type_tag == "bool":
        if isinstance(value, bool) or str(value).lower() in ("true", "false"):
            return
        raise ValueError(f"bool expects true/false, got {value!r}")

    if type_tag in ("address", "signer"):
        if not is_valid_address(str(value)):
            raise ValueError(f"address expects 0x-prefixed hex, got {value!r}")
        return

    if type_tag == "vector<u8>":
        if isinstance(value, str):
            if not _HEX_BYTES_RE.match(value):
                raise ValueError(f"vector<u8> expects 0x-prefixed hex bytes, got {value!r}")
            return
        if isinstance(value, (list, tuple)):
            for item in value:
                check_argument("u8", item)
            return
        raise ValueError(f"vector<u8> expects hex or a list of bytes, got {value!r}")

    if type_tag.startswith("vector<"):
        _, inner = split_type_tag(type_tag)
        if len(inner) != 1:
            raise ValueError(f"Malformed vector type {type_tag!r}")
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"{type_tag} expects a list, got {value!r}")
        for item in value:
            check_argument(inner[0], item)
        return

    if is_struct_tag(type_tag):
        # Strings, Options and objects are passed through as JSON for the node to check
        return

    raise ValueError(f"Unsupported argument type {type_tag!r}")


# =============================================================================
# INTENT
# =============================================================================

def validate_intent(intent: TransactionIntent) -> None:
    """
    Validate an intent locally.

    Raises:
        MalformedIntent: describing the first problem found
    """
    problems = []

    if not is_valid_address(intent.sender):
        problems.append(f"sender {intent.sender!r} is not a valid address")

    try:
        parse_function_id(intent.function)
    except ValueError as e:
        problems.append(str(e))

    for tag in intent.type_arguments:
        try:
            if not is_struct_tag(tag) and tag not in _PRIMITIVE_INT_BITS and tag not in ("bool", "address"):
                problems.append(f"type argument {tag!r} is not a valid type tag")
        except ValueError as e:
            problems.append(str(e))

    for index, argument in enumerate(intent.arguments):
        try:
            check_argument(argument.type_tag, argument.value)
        except ValueError as e:
            problems.append(f"argument {index}: {e}")

    if not 0 < intent.max_gas_amount <= MAX_GAS_AMOUNT_CAP:
        problems.append(f"max_gas_amount must be in 1..{MAX_GAS_AMOUNT_CAP}, got {intent.max_gas_amount}")

    if intent.gas_unit_price <= 0:
        problems.append(f"gas_unit_price must be positive, got {intent.gas_unit_price}")

    if intent.expiration_timestamp_secs is not None and intent.expiration_timestamp_secs <= 0:
        problems.append("expiration_timestamp_secs must be positive")

    if intent.sender_public_key is not None and not _HEX_BYTES_RE.match(intent.sender_public_key):
        problems.append("sender_public_key must be 0x-prefixed hex")

    if problems:
        raise MalformedIntent(
            problems[0],
            details={"problems": problems, "function": intent.function},
        )


def normalize_asset_key(key) -> Optional[str]:
    """
    Normalize an asset key for lookups.

    Addresses (FA metadata) use AIP-40 form; coin types get a normalized
    module address.
    """
    if not isinstance(key, str) or not key:
        return None
    if is_valid_address(key):
        return normalize_address(key)
    base, args = split_type_tag(key)
    normalized = struct_base(base)
    if args:
        return f"{normalized}<{', '.join(args)}>"
    return normalized
