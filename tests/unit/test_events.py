"""
tests/unit/test_events.py - Asset flows from events.
"""

from core.constants import FlowDirection
from core.models import EmittedEvent
from simulation.events import extract_asset_flows, flow_from_event
from tests.fakes import ALICE, BOB


class TestFlowFromEvent:

    def test_legacy_withdraw_uses_guid_account(self):
        event = EmittedEvent(
            type_tag="0x1::coin::WithdrawEvent",
            data={"amount": "300"},
            account_address=ALICE,
        )
        flow = flow_from_event(event)
        assert flow.direction == FlowDirection.OUT
        assert flow.account == ALICE
        assert flow.amount == 300
        assert flow.asset == "unknown"

    def test_module_event_carries_coin_type(self):
        event = EmittedEvent(
            type_tag="0x1::coin::CoinDeposit",
            data={"account": BOB, "amount": "5", "coin_type": "0x1::aptos_coin::AptosCoin"},
        )
        flow = flow_from_event(event)
        assert flow.direction == FlowDirection.IN
        assert flow.account == BOB
        assert flow.asset == "0x1::aptos_coin::AptosCoin"

    def test_fungible_asset_store_event(self):
        event = EmittedEvent(type_tag="0x1::fungible_asset::Withdraw", data={"store": "0xdead", "amount": "7"})
        flow = flow_from_event(event)
        assert flow.account == "0xdead"
        assert flow.asset == "fungible_asset"

    def test_generic_event_asset_from_type_arg(self):
        event = EmittedEvent(
            type_tag="0x1::coin::DepositEvent<0x1::aptos_coin::AptosCoin>",
            data={"amount": "1"},
            account_address=BOB,
        )
        assert flow_from_event(event).asset == "0x1::aptos_coin::AptosCoin"

    def test_ignored_events(self):
        assert flow_from_event(EmittedEvent(type_tag="0x1::account::KeyRotation", data={})) is None
        assert flow_from_event(EmittedEvent(type_tag="0x1::coin::WithdrawEvent", data={"amount": "x"})) is None
        assert flow_from_event(EmittedEvent(type_tag="0x1::coin::WithdrawEvent", data="0x00")) is None
        assert flow_from_event(EmittedEvent(type_tag="not a type", data={"amount": "1"})) is None


def test_extract_keeps_emission_order():
    events = [
        EmittedEvent(type_tag="0x1::coin::WithdrawEvent", data={"amount": "10"}, account_address=ALICE),
        EmittedEvent(type_tag="0x1::transaction_fee::FeeStatement", data={"total_charge_gas_units": "7"}),
        EmittedEvent(type_tag="0x1::coin::DepositEvent", data={"amount": "10"}, account_address=BOB),
    ]
    flows = extract_asset_flows(events)
    assert [(f.account, f.direction) for f in flows] == [
        (ALICE, FlowDirection.OUT),
        (BOB, FlowDirection.IN),
    ]
