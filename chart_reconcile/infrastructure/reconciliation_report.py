"""Reconciliation Report Generator.

Summarizes one pipeline run: which sources were loaded and included, how each
secondary matched, how many records merged per domain and status, and which
conflicts were found.

Security Impact:
    - Reports carry counts, identifiers and conflict text; patient names are
      not included
    - Saved reports give reviewers an audit trail of match decisions
"""

import json
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from chart_reconcile.domain.enums import MergeStatus
from chart_reconcile.domain.ports import Result

if TYPE_CHECKING:
    from chart_reconcile.main import PipelineResult


def build_reconciliation_report(pipeline_result: "PipelineResult") -> dict:
    """Build a JSON-serializable summary of a pipeline run.

    Parameters:
        pipeline_result: Output of ``run_pipeline`` or ``reconcile``

    Returns:
        dict: Report with sources, matching, merge, conflicts and tier1 sections
    """
    merge_result = pipeline_result.merge_result
    merge_counts = {}
    for domain, records in merge_result.domains().items():
        by_status = Counter(r.merge_status.value for r in records)
        merge_counts[domain] = {
            "total": len(records),
            **{status.value: by_status.get(status.value, 0) for status in MergeStatus},
        }

    conflicts = pipeline_result.conflicts
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "status": pipeline_result.status.model_dump(mode="json"),
        "sources": [
            {
                "system_id": s.source.system_id,
                "system_name": s.source.system_name,
                "included": s.included,
                "loaded": s.loaded,
                "total": s.total,
                "counts": s.counts,
                "rejected_records": pipeline_result.rejected_records.get(s.source.system_id, 0),
            }
            for s in pipeline_result.source_summaries
        ],
        "matching": {
            system_id: result.model_dump(mode="json")
            for system_id, result in pipeline_result.match_results.items()
        },
        "merge": {
            "domains": merge_counts,
            "allergy_absence_sources": [s.system_id for s in merge_result.allergy_absence_sources],
            "collapsed_duplicates": len(merge_result.collapsed_duplicates),
        },
        "conflicts": {
            "total": len(conflicts),
            "by_severity": dict(Counter(c.severity.value for c in conflicts)),
            "by_type": dict(Counter(c.type.value for c in conflicts)),
            "items": [
                {
                    "id": c.id,
                    "type": c.type.value,
                    "severity": c.severity.value,
                    "description": c.description,
                }
                for c in conflicts
            ],
        },
        "tier1": pipeline_result.tier1.counts(),
        "disclaimer": pipeline_result.guarded.disclaimer,
        "source_attribution": pipeline_result.guarded.source_attribution,
        "provider_cta": pipeline_result.guarded.provider_cta,
    }


def save_reconciliation_report(report: dict, output_path: str) -> Result[dict]:
    """Write a report to disk as JSON.

    Returns:
        Result[dict]: The report with a ``saved_to`` key, or a failure
    """
    try:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, default=str)
    except OSError as e:
        return Result.failure_result(
            f"Failed to save report to {output_path}: {e}",
            error_type="OSError",
            error_details={'path': output_path},
        )
    return Result.success_result({**report, "saved_to": str(output_file)})


def _inclusion_label(source: dict) -> str:
    if not source["loaded"]:
        return "[red]load failed[/red]"
    return "yes" if source["included"] else "[red]no[/red]"


def print_reconciliation_summary(report: dict, console: Console = None) -> None:
    """Print a human-readable summary of the report."""
    console = console or Console()

    sources = Table(title="Sources")
    sources.add_column("System")
    sources.add_column("Included")
    sources.add_column("Records", justify="right")
    sources.add_column("Rejected", justify="right")
    for s in report["sources"]:
        sources.add_row(
            escape(f"{s['system_name']} ({s['system_id']})"),
            _inclusion_label(s),
            str(s["total"]),
            str(s["rejected_records"]),
        )
    console.print(sources)

    for system_id, match in report["matching"].items():
        verdict = "[green]confirmed[/green]" if match["is_match"] else "[red]rejected[/red]"
        console.print(f"Patient match {escape(system_id)}: {verdict} (confidence {match['confidence']:.2f})")

    merged = Table(title="Merged Records")
    merged.add_column("Domain")
    for column in ("total", *(s.value for s in MergeStatus)):
        merged.add_column(column, justify="right")
    for domain, counts in report["merge"]["domains"].items():
        merged.add_row(domain, str(counts["total"]), *(str(counts[s.value]) for s in MergeStatus))
    console.print(merged)

    conflicts = report["conflicts"]
    console.print(f"\n[bold]Conflicts:[/bold] {conflicts['total']}")
    styles = {"critical": "bold red", "high": "yellow", "medium": "cyan"}
    for item in conflicts["items"]:
        style = styles.get(item["severity"], "white")
        console.print(f"  [{style}]{item['severity'].upper()}[/{style}] {escape(item['description'])}")

    console.print("\n[bold]Tier-1 analysis:[/bold] " + ", ".join(
        f"{name}={count}" for name, count in report["tier1"].items()
    ))
    console.print(f"\n[dim]{escape(report['source_attribution'])} {report['disclaimer']}[/dim]")
    console.print(f"[dim]{report['provider_cta']}[/dim]")
