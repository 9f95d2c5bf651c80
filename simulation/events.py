"""
simulation/events.py - Asset flows from emitted events.

Deposit and withdraw events give a per-account view of value movement
that complements the resource diff (events and writes do not always line
up 1:1, e.g. fungible-asset stores are objects, not accounts).

Recognized events:
  0x1::coin::WithdrawEvent / DepositEvent            (legacy handle events)
  0x1::coin::CoinWithdraw / CoinDeposit              (module events)
  0x1::fungible_asset::Withdraw / Deposit            (store-level)
"""

from typing import Dict, Iterable, List, Optional

from core.constants import FlowDirection
from core.math import parse_move_int
from core.models import AssetFlow, EmittedEvent
from core.validators import split_type_tag, struct_base

_FLOW_EVENTS: Dict[str, FlowDirection] = {
    "0x1::coin::WithdrawEvent": FlowDirection.OUT,
    "0x1::coin::DepositEvent": FlowDirection.IN,
    "0x1::coin::CoinWithdraw": FlowDirection.OUT,
    "0x1::coin::CoinDeposit": FlowDirection.IN,
    "0x1::fungible_asset::Withdraw": FlowDirection.OUT,
    "0x1::fungible_asset::Deposit": FlowDirection.IN,
}


def _asset_of(event: EmittedEvent, data: dict) -> str:
    coin_type = data.get("coin_type")
    if isinstance(coin_type, str) and coin_type:
        return coin_type
    _, args = split_type_tag(event.type_tag)
    if args:
        return args[0]
    if struct_base(event.type_tag).startswith("0x1::fungible_asset::"):
        return "fungible_asset"
    return "unknown"


def flow_from_event(event: EmittedEvent) -> Optional[AssetFlow]:
    """Asset flow described by one event, or None if it is not a flow event."""
    try:
        direction = _FLOW_EVENTS.get(struct_base(event.type_tag))
    except ValueError:
        return None
    if direction is None or not isinstance(event.data, dict):
        return None

    amount = parse_move_int(event.data.get("amount"))
    if amount is None:
        return None

    account = event.data.get("account") or event.data.get("store") or event.account_address or "unknown"
    return AssetFlow(
        account=str(account),
        asset=_asset_of(event, event.data),
        amount=amount,
        direction=direction,
    )


def extract_asset_flows(events: Iterable[EmittedEvent]) -> List[AssetFlow]:
    """Asset flows in event emission order."""
    flows = []
    for event in events:
        flow = flow_from_event(event)
        if flow is not None:
            flows.append(flow)
    return flows
