# PATH: tests/unit/test_validators.py
"""
Unit tests for address, type tag and intent validation.
"""

import unittest

import pytest

from core.constants import ErrorCode, MAX_GAS_AMOUNT_CAP
from core.exceptions import MalformedIntent
from core.models import MoveArgument, TransactionIntent
from core.validators import (
    check_argument,
    is_struct_tag,
    is_valid_address,
    normalize_address,
    normalize_asset_key,
    parse_function_id,
    split_type_tag,
    struct_base,
    validate_intent,
)


class TestAddresses(unittest.TestCase):

    def test_valid_addresses(self):
        self.assertTrue(is_valid_address("0x1"))
        self.assertTrue(is_valid_address("0x" + "ab" * 32))

    def test_invalid_addresses(self):
        self.assertFalse(is_valid_address("1"))
        self.assertFalse(is_valid_address("0x"))
        self.assertFalse(is_valid_address("0x" + "a" * 65))
        self.assertFalse(is_valid_address("0xzz"))
        self.assertFalse(is_valid_address(None))

    def test_special_addresses_stay_short(self):
        self.assertEqual(normalize_address("0x0000000000000000000000000000000000000000000000000000000000000001"), "0x1")
        self.assertEqual(normalize_address("0xA"), "0xa")

    def test_other_addresses_are_padded(self):
        self.assertEqual(normalize_address("0xcafe"), "0x" + "0" * 60 + "cafe")

    def test_normalize_invalid_raises(self):
        with self.assertRaises(ValueError):
            normalize_address("cafe")


class TestTypeTags(unittest.TestCase):

    def test_parse_function_id(self):
        self.assertEqual(parse_function_id("0x1::coin::transfer"), ("0x1", "coin", "transfer"))

    def test_parse_function_id_rejects_bad_parts(self):
        for bad in ("0x1::coin", "coin::transfer::x", "0x1::1coin::transfer", "0x1::coin::"):
            with self.assertRaises(ValueError, msg=bad):
                parse_function_id(bad)

    def test_split_nested_generics(self):
        base, args = split_type_tag("0x1::pool::Pool<0x1::a::A<0x1::b::B, u8>, 0x2::c::C>")
        self.assertEqual(base, "0x1::pool::Pool")
        self.assertEqual(args, ["0x1::a::A<0x1::b::B, u8>", "0x2::c::C"])

    def test_split_unbalanced_raises(self):
        with self.assertRaises(ValueError):
            split_type_tag("0x1::m::S<0x1::a::A")

    def test_struct_base_normalizes_address(self):
        self.assertEqual(struct_base("0x01::coin::CoinStore<0x1::aptos_coin::AptosCoin>"), "0x1::coin::CoinStore")

    def test_is_struct_tag(self):
        self.assertTrue(is_struct_tag("0x1::aptos_coin::AptosCoin"))
        self.assertFalse(is_struct_tag("u64"))

    def test_normalize_asset_key(self):
        self.assertEqual(normalize_asset_key("0x01::aptos_coin::AptosCoin"), "0x1::aptos_coin::AptosCoin")
        self.assertEqual(normalize_asset_key("0x000a"), "0xa")
        self.assertIsNone(normalize_asset_key(""))
        self.assertIsNone(normalize_asset_key(None))


class TestCheckArgument:

    @pytest.mark.parametrize("type_tag,value", [
        ("u8", "255"),
        ("u64", "18446744073709551615"),
        ("u128", 10),
        ("bool", "true"),
        ("bool", False),
        ("address", "0x1"),
        ("vector<u8>", "0xcafe"),
        ("vector<u8>", [1, 2, 255]),
        ("vector<u64>", ["1", "2"]),
        ("vector<vector<u8>>", ["0x01", "0x"]),
        ("0x1::string::String", "hello"),
    ])
    def test_accepts(self, type_tag, value):
        check_argument(type_tag, value)

    @pytest.mark.parametrize("type_tag,value", [
        ("u8", "256"),
        ("u64", "-1"),
        ("u64", "1.5"),
        ("u64", True),
        ("bool", "yes"),
        ("address", "alice"),
        ("vector<u8>", "0xabc"),
        ("vector<u8>", [256]),
        ("vector<u64>", "1,2"),
        ("f64", "1.0"),
    ])
    def test_rejects(self, type_tag, value):
        with pytest.raises(ValueError):
            check_argument(type_tag, value)


class TestValidateIntent:

    def _intent(self, **overrides):
        data = dict(
            sender="0x" + "a1" * 32,
            function="0x1::aptos_account::transfer",
            arguments=(MoveArgument("address", "0x2"), MoveArgument("u64", "100")),
        )
        data.update(overrides)
        return TransactionIntent(**data)

    def test_valid_intent_passes(self):
        validate_intent(self._intent())

    def test_bad_sender(self):
        with pytest.raises(MalformedIntent) as exc_info:
            validate_intent(self._intent(sender="alice"))
        assert exc_info.value.code == ErrorCode.INTENT_MALFORMED
        assert "sender" in exc_info.value.message

    def test_all_problems_listed(self):
        with pytest.raises(MalformedIntent) as exc_info:
            validate_intent(self._intent(
                function="transfer",
                arguments=(MoveArgument("u8", "300"),),
                gas_unit_price=0,
            ))
        assert len(exc_info.value.details["problems"]) == 3

    def test_gas_cap(self):
        validate_intent(self._intent(max_gas_amount=MAX_GAS_AMOUNT_CAP))
        with pytest.raises(MalformedIntent):
            validate_intent(self._intent(max_gas_amount=MAX_GAS_AMOUNT_CAP + 1))
        with pytest.raises(MalformedIntent):
            validate_intent(self._intent(max_gas_amount=0))

    def test_bad_type_argument(self):
        with pytest.raises(MalformedIntent):
            validate_intent(self._intent(type_arguments=("AptosCoin",)))

    def test_public_key_must_be_hex(self):
        with pytest.raises(MalformedIntent):
            validate_intent(self._intent(sender_public_key="not-hex"))
