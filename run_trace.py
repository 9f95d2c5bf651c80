#!/usr/bin/env python3
"""
run_trace.py - CLI entrypoint for Trace.

Usage:
    trace simulate --sender 0x1 --function 0x1::aptos_account::transfer \\
        --arg address:0x2 --arg u64:100000000
    trace view --function 0x1::coin::balance --type-arg 0x1::aptos_coin::AptosCoin --arg address:0x1
    trace price APT
"""

import asyncio
import json
import sys
from typing import Any, Optional

import click

from chains.aptos import AptosClient
from chains.envelope import encode_argument
from config.settings import TraceSettings, build_registry, load_balance_rules, load_settings
from core.exceptions import MalformedIntent, SimulationRejected, TraceError
from core.format_money import format_money, format_quantity, format_signed
from core.logging import get_logger, set_global_context, setup_logging
from core.models import MoveArgument, SimulationOptions, SimulationReport, TransactionIntent
from oracle.pyth import PythOracleClient
from simulation.orchestrator import SimulationOrchestrator
from simulation.valuation import ValuationEnricher

logger = get_logger("trace.cli")

EXIT_FAILED = 1
EXIT_UNAVAILABLE = 2
EXIT_REJECTED = 3
EXIT_INVALID = 4


def _parse_arguments(values: tuple[str, ...]) -> list[MoveArgument]:
    try:
        return [MoveArgument.parse(v) for v in values]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--arg")


def _short(address: str) -> str:
    return address if len(address) <= 14 else f"{address[:8]}..{address[-4:]}"


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))


def _print_report(report: SimulationReport) -> None:
    """Human-readable report."""
    click.echo("=" * 72)
    click.echo(f"Status:      {report.status.value} ({report.vm_status})")
    click.echo(f"Gas used:    {report.gas_used} @ {report.gas_unit_price}")
    click.echo(f"Ledger:      v{report.ledger.ledger_version} chain {report.ledger.chain_id}")
    click.echo(f"Sequence:    {report.sequence_number}{'' if report.sender_exists else ' (new account)'}")
    click.echo(f"Fingerprint: {report.fingerprint}")
    click.echo("-" * 72)

    click.echo(f"Changes ({len(report.diff)})")
    for entry in report.diff:
        click.echo(f"  [{entry.kind.value}] {_short(entry.address)} {entry.type_tag}")
        for change in entry.changes:
            path = change.path or "<value>"
            click.echo(f"      {path}: {change.old!s:>20} -> {change.new!s}")

    if report.annotations:
        click.echo("-" * 72)
        click.echo("Value changes")
        for ann in report.annotations:
            click.echo(
                f"  {ann.asset_id:<8} {_short(ann.address):<16} "
                f"qty {format_quantity(ann.quantity_delta):>18}  "
                f"price {format_money(ann.unit_price, 4):>12}  "
                f"value {format_signed(ann.value_delta):>14} {ann.reference_currency}"
                + (f"  ({ann.status.value})" if not ann.has_value else "")
            )

    if report.asset_flows:
        click.echo("-" * 72)
        click.echo("Asset flows")
        for flow in report.asset_flows:
            click.echo(f"  {flow.direction.value:<4} {_short(flow.account):<16} {flow.amount} {flow.asset}")

    if report.skipped_changes:
        click.echo(f"({report.skipped_changes} table/module changes not diffed)")
    click.echo("=" * 72)


def _fail(e: TraceError) -> None:
    logger.error(str(e), extra={"context": e.to_dict()})
    click.echo(f"Error: {e}", err=True)
    if isinstance(e, MalformedIntent):
        for problem in e.details.get("problems", []):
            click.echo(f"  - {problem}", err=True)
        sys.exit(EXIT_INVALID)
    sys.exit(EXIT_REJECTED if isinstance(e, SimulationRejected) else EXIT_UNAVAILABLE)


async def _simulate(settings: TraceSettings, intent: TransactionIntent, options: SimulationOptions) -> SimulationReport:
    registry = build_registry()
    async with AptosClient(
        settings.node_url,
        timeout_seconds=settings.timeout_seconds,
        api_key=settings.node_api_key,
    ) as chain, PythOracleClient(
        registry,
        base_url=settings.hermes_url,
        timeout_seconds=settings.timeout_seconds,
        latest_staleness_seconds=settings.latest_staleness_seconds,
        historical_staleness_seconds=settings.historical_staleness_seconds,
        latest_ttl_ms=settings.latest_ttl_ms,
        historical_ttl_ms=settings.historical_ttl_ms,
    ) as oracle:
        orchestrator = SimulationOrchestrator(
            chain,
            ValuationEnricher(oracle, registry),
            network=settings.network,
            cache_ttl_ms=settings.cache_ttl_ms,
            bucket_ms=settings.fingerprint_bucket_ms,
            expiration_seconds=settings.expiration_seconds,
            balance_rules=load_balance_rules(),
        )
        return await orchestrator.simulate(intent, options)


async def _view(settings: TraceSettings, function: str, type_args: list[str], args: list[MoveArgument]) -> list:
    async with AptosClient(
        settings.node_url,
        timeout_seconds=settings.timeout_seconds,
        api_key=settings.node_api_key,
    ) as chain:
        return await chain.view(
            function,
            type_arguments=type_args,
            arguments=[encode_argument(a.type_tag, a.value) for a in args],
            timeout=settings.timeout_seconds,
        )


async def _price(settings: TraceSettings, symbol: str, timestamp: Optional[int]):
    async with PythOracleClient(
        build_registry(),
        base_url=settings.hermes_url,
        timeout_seconds=settings.timeout_seconds,
        latest_staleness_seconds=settings.latest_staleness_seconds,
        historical_staleness_seconds=settings.historical_staleness_seconds,
    ) as oracle:
        if timestamp is None:
            return await oracle.get_latest_price(symbol, timeout=settings.timeout_seconds)
        return await oracle.get_price_at(symbol, timestamp, timeout=settings.timeout_seconds)


@click.group()
@click.option("--network", "-n", default=None, help="Network preset (default: TRACE_NETWORK or trace.yaml)")
@click.option("--node-url", default=None, help="Fullnode /v1 URL, overrides the preset")
@click.option(
    "--log-level",
    "-l",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option("--json-logs/--no-json-logs", default=False, help="Use JSON log format")
@click.pass_context
def cli(ctx: click.Context, network: Optional[str], node_url: Optional[str], log_level: str, json_logs: bool) -> None:
    """Trace - transaction simulation and effect tracing."""
    setup_logging(level=log_level, json_format=json_logs)
    try:
        settings = load_settings(network=network)
    except KeyError as e:
        raise click.BadParameter(str(e), param_hint="--network")
    if node_url:
        settings.node_url = node_url
    set_global_context(service="trace", network=settings.network)
    ctx.obj = settings


@cli.command()
@click.option("--sender", "-s", required=True, help="Sender account address")
@click.option("--function", "-f", "function", required=True, help="Entry function id, e.g. 0x1::coin::transfer")
@click.option("--type-arg", "-t", "type_args", multiple=True, help="Type argument (repeatable)")
@click.option("--arg", "-a", "args", multiple=True, help="Argument as type:value, e.g. u64:100 (repeatable)")
@click.option("--max-gas", default=None, type=int, help="Max gas amount")
@click.option("--gas-price", default=None, type=int, help="Gas unit price")
@click.option("--public-key", default=None, help="Sender ed25519 public key (hex)")
@click.option("--reference", "-r", default=None, help="Reference currency (USD or an asset symbol)")
@click.option("--timeout-ms", default=None, type=int, help="Per-call timeout in milliseconds")
@click.option("--no-cache", is_flag=True, help="Bypass the simulation cache")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_obj
def simulate(
    settings: TraceSettings,
    sender: str,
    function: str,
    type_args: tuple[str, ...],
    args: tuple[str, ...],
    max_gas: Optional[int],
    gas_price: Optional[int],
    public_key: Optional[str],
    reference: Optional[str],
    timeout_ms: Optional[int],
    no_cache: bool,
    as_json: bool,
) -> None:
    """Simulate an entry-function call and print its effects."""
    intent = TransactionIntent(
        sender=sender,
        function=function,
        arguments=_parse_arguments(args),
        type_arguments=type_args,
        max_gas_amount=max_gas if max_gas is not None else settings.max_gas_amount,
        gas_unit_price=gas_price if gas_price is not None else settings.gas_unit_price,
        sender_public_key=public_key,
    )
    try:
        options = SimulationOptions(
            timeout_ms=timeout_ms or settings.timeout_ms,
            skip_cache=no_cache,
            reference_currency=reference or settings.reference_currency,
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--timeout-ms")

    try:
        report = asyncio.run(_simulate(settings, intent, options))
    except TraceError as e:
        _fail(e)
        return

    if as_json:
        _echo_json(report.to_dict())
    else:
        _print_report(report)

    if not report.succeeded:
        sys.exit(EXIT_FAILED)


@cli.command()
@click.option("--function", "-f", "function", required=True, help="View function id")
@click.option("--type-arg", "-t", "type_args", multiple=True, help="Type argument (repeatable)")
@click.option("--arg", "-a", "args", multiple=True, help="Argument as type:value (repeatable)")
@click.pass_obj
def view(settings: TraceSettings, function: str, type_args: tuple[str, ...], args: tuple[str, ...]) -> None:
    """Call a view function."""
    arguments = _parse_arguments(args)
    try:
        result = asyncio.run(_view(settings, function, list(type_args), arguments))
    except TraceError as e:
        _fail(e)
        return
    _echo_json(result)


@cli.command()
@click.argument("symbol")
@click.option("--at", "timestamp", default=None, type=int, help="Unix timestamp (default: latest)")
@click.option("--json", "as_json", is_flag=True, help="Print the quote as JSON")
@click.pass_obj
def price(settings: TraceSettings, symbol: str, timestamp: Optional[int], as_json: bool) -> None:
    """Show the oracle price of an asset."""
    try:
        quote = asyncio.run(_price(settings, symbol, timestamp))
    except TraceError as e:
        _fail(e)
        return
    if as_json:
        _echo_json(quote.to_dict())
        return
    click.echo(
        f"{quote.asset_id}/USD {format_money(quote.price, 4)} "
        f"(+/- {format_money(quote.confidence, 4)}) published {quote.publish_time}"
    )


if __name__ == "__main__":
    cli()
