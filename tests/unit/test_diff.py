"""
tests/unit/test_diff.py - Effect diff engine tests.
"""

import pytest

from core.constants import DiffKind, OperationKind
from core.models import EmittedEvent, KnownValue, OpaqueValue, WriteSetEntry
from core.validators import struct_base
from simulation.diff import BalanceRule, diff_entry, diff_write_set, resolve_asset_key
from tests.fakes import ALICE, APT_COIN_STORE, BOB, coin_store

FA_STORE = "0x1::fungible_asset::FungibleStore"


def modify(address, type_tag, before, after):
    return WriteSetEntry(address, type_tag, OperationKind.MODIFY, after=after).with_before(before)


class TestCreationAndDeletion:

    def test_creation_lists_every_field_as_addition(self):
        entry = modify(ALICE, APT_COIN_STORE, None, KnownValue(coin_store(0)))
        result = diff_entry(entry)
        assert result.kind == DiffKind.CREATION
        assert all(c.is_addition for c in result.changes)
        assert "coin.value" in [c.path for c in result.changes]

    def test_deletion_lists_every_field_as_removal(self):
        entry = WriteSetEntry(ALICE, "0x1::m::S", OperationKind.DELETE).with_before(KnownValue({"a": "1", "b": {"c": True}}))
        result = diff_entry(entry)
        assert result.kind == DiffKind.DELETION
        assert [(c.path, c.old) for c in result.changes] == [("a", "1"), ("b.c", True)]
        assert all(c.is_removal for c in result.changes)

    def test_deletion_of_unknown_resource(self):
        entry = WriteSetEntry(ALICE, "0x1::m::S", OperationKind.DELETE)
        result = diff_entry(entry)
        assert result.kind == DiffKind.DELETION
        assert result.changes == ()

    def test_opaque_creation(self):
        entry = modify(ALICE, "0x1::m::Raw", None, OpaqueValue(b"\x01"))
        result = diff_entry(entry)
        assert result.kind == DiffKind.CREATION
        assert result.changes[0].path == ""
        assert result.changes[0].new == "0x01"


class TestModify:

    def test_balance_change(self):
        entry = modify(ALICE, APT_COIN_STORE, KnownValue(coin_store(100000000000)), KnownValue(coin_store(70000000000)))
        result = diff_entry(entry)
        assert result.kind == DiffKind.BALANCE_CHANGE
        assert result.balance_path == "coin.value"
        assert result.balance_delta == -30000000000
        assert result.asset_key == "0x1::aptos_coin::AptosCoin"

    def test_unchanged_fields_omitted(self):
        entry = modify(ALICE, APT_COIN_STORE, KnownValue(coin_store(1)), KnownValue(coin_store(2)))
        assert [c.path for c in diff_entry(entry).changes] == ["coin.value"]

    def test_non_balance_field_is_state_change(self):
        before = coin_store(5)
        after = dict(coin_store(5), frozen=True)
        result = diff_entry(modify(ALICE, APT_COIN_STORE, KnownValue(before), KnownValue(after)))
        assert result.kind == DiffKind.STATE_CHANGE

    def test_unknown_struct_is_state_change(self):
        result = diff_entry(modify(ALICE, "0xcafe::vault::Vault", KnownValue({"n": "1"}), KnownValue({"n": "2"})))
        assert result.kind == DiffKind.STATE_CHANGE
        assert result.balance_delta is None

    def test_noop_modify_yields_nothing(self):
        value = KnownValue(coin_store(5))
        assert diff_entry(modify(ALICE, APT_COIN_STORE, value, value)) is None

    def test_fungible_store_asset_from_metadata(self):
        before = {"balance": "1000000", "frozen": False, "metadata": {"inner": "0xa"}}
        after = dict(before, balance="400000")
        result = diff_entry(modify(BOB, FA_STORE, KnownValue(before), KnownValue(after)))
        assert result.kind == DiffKind.BALANCE_CHANGE
        assert result.asset_key == "0xa"
        assert result.balance_delta == -600000

    def test_opaque_compared_by_bytes(self):
        same = diff_entry(modify(ALICE, "0x1::m::Raw", OpaqueValue(b"\x01"), OpaqueValue(b"\x01")))
        assert same is None
        changed = diff_entry(modify(ALICE, "0x1::m::Raw", OpaqueValue(b"\x01"), OpaqueValue(b"\x02")))
        assert changed.kind == DiffKind.STATE_CHANGE
        assert (changed.changes[0].old, changed.changes[0].new) == ("0x01", "0x02")

    def test_field_added_in_upgrade(self):
        result = diff_entry(modify(ALICE, "0x1::m::S", KnownValue({"a": "1"}), KnownValue({"a": "1", "b": "2"})))
        assert result.changes[0].is_addition

    def test_custom_balance_rule(self):
        vault = "0xcafe::vault::Vault<0x1::aptos_coin::AptosCoin>"
        rules = {struct_base(vault): BalanceRule(path="shares")}
        entry = modify(ALICE, vault, KnownValue({"shares": "10"}), KnownValue({"shares": "15"}))
        result = diff_entry(entry, rules)
        assert result.kind == DiffKind.BALANCE_CHANGE
        assert result.balance_delta == 5


class TestDiffWriteSet:

    def test_ordering_independent_of_input_order(self):
        entries = [
            modify(BOB, APT_COIN_STORE, KnownValue(coin_store(1)), KnownValue(coin_store(2))),
            modify(ALICE, "0x1::m::Z", None, KnownValue({"a": "1"})),
            modify(ALICE, APT_COIN_STORE, KnownValue(coin_store(3)), KnownValue(coin_store(1))),
        ]
        forward = diff_write_set(entries)
        backward = diff_write_set(reversed(entries))
        assert forward == backward
        assert [(e.address, e.type_tag) for e in forward] == [
            (ALICE, APT_COIN_STORE),
            (ALICE, "0x1::m::Z"),
            (BOB, APT_COIN_STORE),
        ]

    def test_events_carried_not_merged(self):
        event = EmittedEvent(type_tag="0x1::coin::WithdrawEvent", data={"amount": "1"})
        diff = diff_write_set([], [event])
        assert len(diff) == 0
        assert diff.events == (event,)

    def test_of_kind(self):
        diff = diff_write_set([
            modify(ALICE, APT_COIN_STORE, KnownValue(coin_store(3)), KnownValue(coin_store(1))),
            modify(ALICE, "0x1::m::Z", None, KnownValue({"a": "1"})),
        ])
        assert len(diff.of_kind(DiffKind.CREATION)) == 1
        assert len(diff.of_kind(DiffKind.BALANCE_CHANGE)) == 1


@pytest.mark.parametrize("type_tag,expected", [
    (APT_COIN_STORE, "0x1::aptos_coin::AptosCoin"),
    ("0x1::coin::CoinStore<0x0cafe::usdc::USDC>", "0x" + "0" * 60 + "cafe::usdc::USDC"),
    ("0x1::coin::CoinStore", None),
])
def test_resolve_asset_key_from_type_arg(type_tag, expected):
    entry = WriteSetEntry(ALICE, type_tag, OperationKind.MODIFY, after=KnownValue({}))
    assert resolve_asset_key(entry, BalanceRule(path="coin.value")) == expected
