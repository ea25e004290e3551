"""Main entry point for the chart-reconcile pipeline.

Loads one primary and any number of secondary source snapshots, verifies that
each secondary describes the same patient, merges the verified sources,
detects cross-source conflicts and runs the Tier-1 analyzers.

Security Impact:
    - A secondary source whose patient identity is not confirmed is never merged
    - Identity cannot be verified without primary demographics; secondaries
      are then skipped, not merged
    - Only the complete absence of data is a hard failure

Architecture:
    - Follows Hexagonal Architecture principles
    - Adapters are selected automatically based on source format
    - Sources load concurrently; everything after loading is synchronous and pure
"""

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from chart_reconcile.adapters import get_adapter
from chart_reconcile.domain.clinical_record import Demographics, SourceSnapshot, SourceTag
from chart_reconcile.domain.conflicts import Conflict
from chart_reconcile.domain.enums import StageState
from chart_reconcile.domain.guardrails import apply_guardrails
from chart_reconcile.domain.insights import GuardedOutput, Tier1Results
from chart_reconcile.domain.merged import MergeResult
from chart_reconcile.domain.ports import NoSourceDataError, ReconciliationError
from chart_reconcile.domain.rules import run_tier1_analysis
from chart_reconcile.domain.services import ConflictDetector, MatchResult, MergeEngine, PatientMatcher
from chart_reconcile.infrastructure.config_manager import ReconciliationConfig
from chart_reconcile.infrastructure.settings import settings

logger = logging.getLogger(__name__)


class SourceSummary(BaseModel):
    """Per-source record counts for one run."""

    source: SourceTag
    counts: dict[str, int]
    total: int
    included: bool = Field(True, description="False when excluded by patient matching")
    loaded: bool = Field(True, description="False when the source failed to load")


class StageStatus(BaseModel):
    """Status of each pipeline stage.

    Attributes:
        sources: Load status per source identifier (path)
        matching: Match status per secondary system_id
        merge: Merge stage status
        conflicts: Conflict detection status
        tier1: Tier-1 analysis status
    """

    sources: dict[str, StageState] = Field(default_factory=dict)
    matching: dict[str, StageState] = Field(default_factory=dict)
    merge: StageState = StageState.PENDING
    conflicts: StageState = StageState.PENDING
    tier1: StageState = StageState.PENDING


class PipelineResult(BaseModel):
    """Everything one reconciliation run produced."""

    merge_result: MergeResult
    conflicts: list[Conflict]
    tier1: Tier1Results
    guarded: GuardedOutput
    source_summaries: list[SourceSummary]
    match_results: dict[str, MatchResult] = Field(default_factory=dict)
    rejected_records: dict[str, int] = Field(default_factory=dict)
    status: StageStatus


def build_source_summary(
    snapshot: SourceSnapshot, included: bool = True, loaded: bool = True
) -> SourceSummary:
    return SourceSummary(
        source=snapshot.source,
        counts=snapshot.domain_counts(),
        total=snapshot.record_count,
        included=included,
        loaded=loaded,
    )


def _unloaded_tag(source: str) -> SourceTag:
    path = Path(source)
    return SourceTag(system_name=path.name or source, system_id=path.stem or source)


def _anonymous(snapshot: SourceSnapshot) -> Demographics:
    return Demographics(patient_id=snapshot.source.system_id)


def reconcile(
    snapshots: Sequence[SourceSnapshot],
    primary_demographics: Optional[Demographics] = None,
    today: Optional[date] = None,
    config: Optional[ReconciliationConfig] = None,
    status: Optional[StageStatus] = None,
) -> PipelineResult:
    """Reconcile already-loaded snapshots.

    The first snapshot is the primary source. Every other snapshot is merged
    only if its demographics match the primary's.

    Parameters:
        snapshots: Primary snapshot first, then secondaries
        primary_demographics: Overrides the primary snapshot's demographics
        today: Evaluation date for care gaps
        config: Reconciliation thresholds (defaults to settings)
        status: Stage status carried over from loading

    Returns:
        PipelineResult: Merged data, conflicts, Tier-1 results and run status

    Raises:
        NoSourceDataError: If no included source holds any record
    """
    config = config or settings.reconciliation
    status = status or StageStatus()
    snapshots = list(snapshots)
    if not snapshots:
        status.merge = StageState.ERROR
        logger.error("No health data available from any source.")
        raise NoSourceDataError()

    primary, secondaries = snapshots[0], snapshots[1:]
    primary_demo = primary_demographics or primary.demographics
    matcher = PatientMatcher(config.match_threshold)

    included = [primary]
    summaries = [build_source_summary(primary)]
    match_results: dict[str, MatchResult] = {}
    for snapshot in secondaries:
        system_id = snapshot.source.system_id
        if primary_demo is None:
            status.matching[system_id] = StageState.SKIPPED
            summaries.append(build_source_summary(snapshot, included=False))
            logger.warning("No primary demographics; source %s not merged", system_id)
            continue

        result = matcher.match(primary_demo, snapshot.demographics or _anonymous(snapshot))
        match_results[system_id] = result
        if result.is_match:
            status.matching[system_id] = StageState.CONFIRMED
            included.append(snapshot)
            logger.info("Patient match confirmed for %s (confidence %.2f)", system_id, result.confidence)
        else:
            status.matching[system_id] = StageState.REJECTED
            logger.warning(
                "Patient match rejected for %s: confidence %.2f < %.2f threshold; source excluded",
                system_id, result.confidence, config.match_threshold,
            )
        summaries.append(build_source_summary(snapshot, included=result.is_match))

    if sum(s.record_count for s in included) == 0:
        status.merge = StageState.ERROR
        status.conflicts = StageState.ERROR
        logger.error("No health data available from any source.")
        raise NoSourceDataError(sources=[s.source.system_id for s in snapshots])

    engine = MergeEngine(config.lab_vital_window, config.immunization_window)
    merge_result = engine.merge_all(included)
    status.merge = StageState.COMPLETE

    conflicts = ConflictDetector().detect_all(merge_result)
    status.conflicts = StageState.COMPLETE

    tier1 = run_tier1_analysis(
        primary_demo,
        merge_result,
        conflicts,
        today=today,
        stable_threshold_percent=config.stable_trend_percent,
        critical_factor=config.critical_lab_factor,
    )
    status.tier1 = StageState.COMPLETE

    return PipelineResult(
        merge_result=merge_result,
        conflicts=conflicts,
        tier1=tier1,
        guarded=apply_guardrails(tier1, [s.source for s in included]),
        source_summaries=summaries,
        match_results=match_results,
        status=status,
    )


def load_source(source: str) -> tuple[Optional[SourceSnapshot], int]:
    """Load one source; returns (snapshot or None on failure, rejected record count)."""
    try:
        adapter = get_adapter(source)
    except ReconciliationError as e:
        logger.warning("Source %s skipped: %s", source, e)
        return None, 0

    result = adapter.load(source)
    rejected = getattr(adapter, "rejected_records", 0)
    if result.is_failure():
        return None, rejected
    return result.value, rejected


def run_pipeline(
    primary_source: str,
    secondary_sources: Sequence[str] = (),
    today: Optional[date] = None,
    config: Optional[ReconciliationConfig] = None,
    max_workers: Optional[int] = None,
) -> PipelineResult:
    """Load all sources concurrently, then reconcile.

    A secondary that fails to load contributes an empty snapshot: it is
    marked ``error``, takes no part in matching, and is listed last in the
    source summaries with ``loaded`` False. If the primary fails, secondaries
    cannot be identity-checked and are not merged.

    Parameters:
        primary_source: Path of the primary source snapshot
        secondary_sources: Paths of secondary snapshots
        today: Evaluation date for care gaps
        config: Reconciliation thresholds (defaults to settings)
        max_workers: Concurrent loads (defaults to settings.max_workers)

    Returns:
        PipelineResult

    Raises:
        NoSourceDataError: If no source yields usable data
    """
    sources = [primary_source, *secondary_sources]
    status = StageStatus()
    workers = max(1, min(max_workers or settings.max_workers, len(sources)))

    logger.info("Loading %d source(s) with %d worker(s)", len(sources), workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="source-loader") as executor:
        loaded = list(executor.map(load_source, sources))

    snapshots: list[SourceSnapshot] = []
    failed: list[SourceSnapshot] = []
    rejected_records: dict[str, int] = {}
    for source, (snapshot, rejected) in zip(sources, loaded):
        status.sources[source] = StageState.SUCCESS if snapshot is not None else StageState.ERROR
        if snapshot is None:
            failed.append(SourceSnapshot.empty(_unloaded_tag(source)))
            continue
        if rejected:
            rejected_records[snapshot.source.system_id] = rejected
        snapshots.append(snapshot)

    if status.sources[primary_source] == StageState.ERROR:
        logger.warning("Primary source %s failed to load; secondaries cannot be verified", primary_source)
        for snapshot in snapshots:
            status.matching[snapshot.source.system_id] = StageState.SKIPPED
        status.merge = StageState.ERROR
        logger.error("No health data available from any source.")
        raise NoSourceDataError(sources=[Path(s).name for s in sources])

    result = reconcile(snapshots, today=today, config=config, status=status)
    summaries = [
        *result.source_summaries,
        *(build_source_summary(s, included=False, loaded=False) for s in failed),
    ]
    return result.model_copy(update={"rejected_records": rejected_records, "source_summaries": summaries})
