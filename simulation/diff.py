"""
simulation/diff.py - Effect diff engine.

DIFF CONTRACT (pure, deterministic):
====================================
  diff_write_set(write_set, events) -> EffectDiff

  Ordering:  entries sorted by (address, type tag) ascending;
             field changes sorted by path.
  Creation:  before absent  -> every field is an addition.
  Deletion:  after absent   -> every field is a removal.
  Modify:    field-by-field on dotted paths; unchanged fields omitted;
             a modify with no changed field yields no entry.
  Balance:   the entry is balance-change when the struct's balance field
             (see BalanceRule) changed between two integers; otherwise
             any change is state-change.
  Opaque:    compared by bytes; a difference is one root change (path "").
  Events:    carried alongside, never merged into field changes.
====================================
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from core.constants import BALANCE_ASSET_SOURCES, BALANCE_FIELDS, DiffKind
from core.math import parse_move_int
from core.models import (
    EffectDiff,
    EffectDiffEntry,
    EmittedEvent,
    FieldChange,
    KnownValue,
    MoveValue,
    OpaqueValue,
    WriteSetEntry,
)
from core.validators import normalize_asset_key, split_type_tag, struct_base

TYPE_ARG_SOURCE = "type_arg"


@dataclass(frozen=True)
class BalanceRule:
    """Where a balance struct keeps its amount and its asset identity."""
    path: str
    asset_source: str = TYPE_ARG_SOURCE


DEFAULT_BALANCE_RULES: Dict[str, BalanceRule] = {
    base: BalanceRule(path=path, asset_source=BALANCE_ASSET_SOURCES.get(base, TYPE_ARG_SOURCE))
    for base, path in BALANCE_FIELDS.items()
}


def _fields(value: MoveValue) -> Dict[str, Any]:
    if isinstance(value, KnownValue):
        return {p: v for p, v in value.flatten().items() if v is not None}
    return {"": value.render()}


def _changes_between(before: Dict[str, Any], after: Dict[str, Any]) -> List[FieldChange]:
    changes = []
    for path in sorted(set(before) | set(after)):
        old = before.get(path)
        new = after.get(path)
        if old != new:
            changes.append(FieldChange(path=path, old=old, new=new))
    return changes


def _opaque_changes(before: MoveValue, after: MoveValue) -> List[FieldChange]:
    if isinstance(before, OpaqueValue) and isinstance(after, OpaqueValue):
        if before.raw == after.raw:
            return []
    elif before.render() == after.render():
        return []
    return [FieldChange(path="", old=before.render(), new=after.render())]


def resolve_asset_key(entry: WriteSetEntry, rule: BalanceRule) -> Optional[str]:
    """Asset identity of a balance resource: coin type or FA metadata address."""
    if rule.asset_source == TYPE_ARG_SOURCE:
        _, args = split_type_tag(entry.type_tag)
        return normalize_asset_key(args[0]) if args else None
    for value in (entry.after, entry.before):
        if isinstance(value, KnownValue):
            key = value.get_path(rule.asset_source)
            if key is not None:
                return normalize_asset_key(key)
    return None


def _is_balance_change(changes: Iterable[FieldChange], rule: Optional[BalanceRule]) -> bool:
    if rule is None:
        return False
    for change in changes:
        if change.path == rule.path:
            return parse_move_int(change.old) is not None and parse_move_int(change.new) is not None
    return False


def diff_entry(
    entry: WriteSetEntry,
    rules: Mapping[str, BalanceRule] = DEFAULT_BALANCE_RULES,
) -> Optional[EffectDiffEntry]:
    """
    Diff a single write-set entry.

    Returns:
        EffectDiffEntry, or None for a modify that changed nothing
    """
    before, after = entry.before, entry.after

    if after is None:
        removed = _fields(before) if before is not None else {}
        return EffectDiffEntry(
            address=entry.address,
            type_tag=entry.type_tag,
            kind=DiffKind.DELETION,
            changes=tuple(FieldChange(path=p, old=v) for p, v in sorted(removed.items())),
        )

    if before is None:
        added = _fields(after)
        return EffectDiffEntry(
            address=entry.address,
            type_tag=entry.type_tag,
            kind=DiffKind.CREATION,
            changes=tuple(FieldChange(path=p, new=v) for p, v in sorted(added.items())),
        )

    if isinstance(before, OpaqueValue) or isinstance(after, OpaqueValue):
        changes = _opaque_changes(before, after)
        rule = None
    else:
        changes = _changes_between(_fields(before), _fields(after))
        rule = rules.get(struct_base(entry.type_tag))

    if not changes:
        return None

    if _is_balance_change(changes, rule):
        return EffectDiffEntry(
            address=entry.address,
            type_tag=entry.type_tag,
            kind=DiffKind.BALANCE_CHANGE,
            changes=tuple(changes),
            balance_path=rule.path,
            asset_key=resolve_asset_key(entry, rule),
        )

    return EffectDiffEntry(
        address=entry.address,
        type_tag=entry.type_tag,
        kind=DiffKind.STATE_CHANGE,
        changes=tuple(changes),
    )


def diff_write_set(
    write_set: Iterable[WriteSetEntry],
    events: Iterable[EmittedEvent] = (),
    rules: Mapping[str, BalanceRule] = DEFAULT_BALANCE_RULES,
) -> EffectDiff:
    """
    Compute the structured effect diff of a simulation.

    Output order depends only on the input content, never on the order in
    which the write-set was assembled.
    """
    entries = []
    for entry in sorted(write_set, key=lambda e: (e.address, e.type_tag)):
        result = diff_entry(entry, rules)
        if result is not None:
            entries.append(result)
    return EffectDiff(entries=tuple(entries), events=tuple(events))
