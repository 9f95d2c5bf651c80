"""
simulation/orchestrator.py - Simulation orchestrator.

SIMULATION FLOW:
================
  1. validate intent            (MalformedIntent, no network)
  2. fingerprint -> cache       (hit / join / miss)
  3. ledger info + sender sequence number (0 for a fresh account)
  4. node simulate              (VM failure -> status FAILED, not an error)
  5. before-state of every touched resource at the simulated version
     (response version - 1, else the fetched ledger version)
  6. diff -> valuation -> asset flows -> SimulationReport
  7. report stored in cache and returned

ERROR SURFACE:
  UpstreamUnavailable  node unreachable / timed out   -> raised, retryable
  SimulationRejected   node refused the transaction   -> raised, terminal
  MalformedIntent      caller bug                     -> raised before step 2
  Oracle failures only degrade annotations.
================
"""

import asyncio
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from chains.aptos import AptosClient
from chains.envelope import build_envelope
from core.constants import (
    DEFAULT_EXPIRATION_SECONDS,
    DEFAULT_FINGERPRINT_BUCKET_MS,
    DEFAULT_SIMULATION_TTL_MS,
    SimulationStatus,
)
from core.logging import get_logger
from core.models import (
    EffectDiff,
    LedgerInfo,
    MoveValue,
    SimulationOptions,
    SimulationReport,
    SubmissionResult,
    TransactionEnvelope,
    TransactionIntent,
    ValuationAnnotation,
    WriteSetEntry,
)
from core.time import now_ms
from core.validators import validate_intent
from simulation.cache import RequestCache
from simulation.diff import DEFAULT_BALANCE_RULES, BalanceRule, diff_write_set
from simulation.events import extract_asset_flows
from simulation.fingerprint import compute_fingerprint
from simulation.valuation import ValuationEnricher

logger = get_logger(__name__)


class Signer(Protocol):
    """Wallet capability. Only used when a simulation is chained into a submission."""

    async def sign(self, envelope: TransactionEnvelope) -> bytes:
        ...


class SimulationOrchestrator:
    """Coordinates one simulation request end to end."""

    def __init__(
        self,
        chain: AptosClient,
        enricher: ValuationEnricher,
        network: str = "",
        cache_ttl_ms: int = DEFAULT_SIMULATION_TTL_MS,
        bucket_ms: int = DEFAULT_FINGERPRINT_BUCKET_MS,
        expiration_seconds: int = DEFAULT_EXPIRATION_SECONDS,
        balance_rules: Mapping[str, BalanceRule] = DEFAULT_BALANCE_RULES,
        clock: Callable[[], int] = now_ms,
    ):
        self.chain = chain
        self.enricher = enricher
        self.network = network or chain.base_url
        self.bucket_ms = bucket_ms
        self.expiration_seconds = expiration_seconds
        self.balance_rules = balance_rules
        self._clock = clock
        self.cache: RequestCache[SimulationReport] = RequestCache(cache_ttl_ms, name="simulations")

    async def simulate(
        self,
        intent: TransactionIntent,
        options: Optional[SimulationOptions] = None,
    ) -> SimulationReport:
        """
        Simulate an intent and return its effect report.

        Raises:
            MalformedIntent: intent failed local validation
            UpstreamUnavailable: node unreachable or timed out
            SimulationRejected: node refused the transaction
        """
        options = options or SimulationOptions()
        validate_intent(intent)

        fingerprint = compute_fingerprint(intent, self.network, self.bucket_ms, self._clock())

        if options.skip_cache:
            return await self._run(intent, options, fingerprint)

        # Reports valued in different currencies are different results
        key = f"{fingerprint}:{options.reference_currency.upper()}"
        return await self.cache.get_or_compute(key, lambda: self._run(intent, options, fingerprint))

    async def simulate_and_submit(
        self,
        intent: TransactionIntent,
        signer: Signer,
        options: Optional[SimulationOptions] = None,
    ) -> SubmissionResult:
        """
        Simulate on fresh state, then sign and submit if execution succeeded.

        The signer is not called when the simulation fails on-chain.
        """
        options = replace(options or SimulationOptions(), skip_cache=True)
        report = await self.simulate(intent, options)

        if not report.succeeded:
            logger.info(
                "Simulation failed, not submitting",
                extra={"context": {"fingerprint": report.fingerprint, "vm_status": report.vm_status}},
            )
            return SubmissionResult(report=report, submitted=False)

        envelope = build_envelope(intent, report.sequence_number, report.ledger, self.expiration_seconds)
        signed = await signer.sign(envelope)
        tx_hash = await self.chain.submit_signed(signed, timeout=options.timeout_seconds)

        logger.info(
            "Transaction submitted",
            extra={"context": {"fingerprint": report.fingerprint, "hash": tx_hash}},
        )
        return SubmissionResult(report=report, submitted=True, transaction_hash=tx_hash)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "node": self.chain.get_stats_summary(),
            "cache": self.cache.get_stats(),
        }

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _run(
        self,
        intent: TransactionIntent,
        options: SimulationOptions,
        fingerprint: str,
    ) -> SimulationReport:
        timeout = options.timeout_seconds

        ledger = await self.chain.get_ledger_info(timeout=timeout)
        account = await self.chain.get_account(intent.sender, timeout=timeout)
        sequence_number = account.sequence_number if account is not None else 0

        envelope = build_envelope(intent, sequence_number, ledger, self.expiration_seconds)
        raw = await self.chain.simulate(envelope, timeout=timeout)

        state_version = raw.pre_state_version
        if state_version is None:
            state_version = ledger.ledger_version
        write_set = await self._attach_before_state(raw.write_set, state_version, timeout)
        diff = diff_write_set(write_set, raw.events, self.balance_rules)
        annotations = await self._value(diff, ledger, options)
        flows = extract_asset_flows(raw.events)

        status = SimulationStatus.SUCCESS if raw.success else SimulationStatus.FAILED
        report = SimulationReport(
            status=status,
            vm_status=raw.vm_status,
            gas_used=raw.gas_used,
            gas_unit_price=raw.gas_unit_price or intent.gas_unit_price,
            diff=diff,
            annotations=tuple(annotations),
            ledger=ledger,
            fingerprint=fingerprint,
            sequence_number=sequence_number,
            sender_exists=account is not None,
            asset_flows=tuple(flows),
            skipped_changes=raw.skipped_changes,
            transaction_hash=raw.hash,
        )

        logger.info(
            "Simulation complete",
            extra={"context": {
                "fingerprint": fingerprint[:16],
                "status": status.value,
                "vm_status": raw.vm_status,
                "gas_used": raw.gas_used,
                "entries": len(diff),
                "annotations": len(annotations),
            }},
        )
        return report

    async def _attach_before_state(
        self,
        write_set: Iterable[WriteSetEntry],
        ledger_version: int,
        timeout: Optional[float],
    ) -> List[WriteSetEntry]:
        """
        Fetch the pre-state of every touched resource.

        Addresses are fetched concurrently. Resources absent at that
        version (including everything under a fresh account) stay absent,
        which turns their writes into creations.
        """
        entries = list(write_set)
        types_by_address: Dict[str, List[str]] = {}
        for entry in entries:
            types_by_address.setdefault(entry.address, []).append(entry.type_tag)

        addresses = sorted(types_by_address)
        snapshots = await asyncio.gather(*(
            self.chain.get_account_state(
                address,
                types_by_address[address],
                ledger_version=ledger_version,
                timeout=timeout,
            )
            for address in addresses
        ))

        before: Dict[Tuple[str, str], MoveValue] = {}
        for snapshot_list in snapshots:
            for snapshot in snapshot_list:
                before[(snapshot.address, snapshot.type_tag)] = snapshot.value

        return [entry.with_before(before.get(entry.key)) for entry in entries]

    async def _value(
        self,
        diff: EffectDiff,
        ledger: LedgerInfo,
        options: SimulationOptions,
    ) -> List[ValuationAnnotation]:
        """Valuation degrades to explicit no-quote markers instead of failing the report."""
        try:
            return await self.enricher.enrich(
                diff.entries,
                ledger.timestamp_seconds,
                reference_currency=options.reference_currency,
                timeout=options.timeout_seconds,
            )
        except Exception as e:
            logger.error(
                "Valuation failed, reporting entries as unpriced",
                exc_info=True,
                extra={"context": {"error": str(e)}},
            )
            return self.enricher.unpriced(diff.entries, options.reference_currency, reason=str(e))
