"""Tabular export of merged records.

Turns each merged domain into a pandas DataFrame with display columns plus
provenance columns, and writes them as CSV files for review in a spreadsheet.

Architecture:
    - Infrastructure layer; domain models are read, never modified
    - Provenance lists are flattened to "|"-joined strings
"""

import logging
from pathlib import Path

import pandas as pd

from chart_reconcile.domain.merged import MergeResult

logger = logging.getLogger(__name__)

# Domain -> display columns taken from each merged record
DISPLAY_COLUMNS = {
    "medications": ["id", "name", "status", "dosage_instruction", "prescriber", "date_written"],
    "lab_results": ["id", "name", "value", "unit", "status", "effective_date"],
    "vitals": ["id", "name", "vital_type", "value", "unit", "effective_date"],
    "allergies": ["id", "substance", "criticality", "clinical_status", "recorded_date"],
    "conditions": ["id", "name", "clinical_status", "onset_date", "recorded_date"],
    "immunizations": ["id", "vaccine_name", "status", "occurrence_date"],
    "encounters": ["id", "type", "encounter_class", "reason", "period_start", "provider"],
}

PROVENANCE_COLUMNS = ["merge_status", "source_system", "all_sources", "merged_from_ids"]


def _row(record, columns: list[str]) -> dict:
    data = record.model_dump(mode="json", include=set(columns))
    row = {column: data.get(column) for column in columns}
    row["merge_status"] = record.merge_status.value
    row["source_system"] = record.source.system_id
    row["all_sources"] = "|".join(s.system_id for s in record.all_sources)
    row["merged_from_ids"] = "|".join(record.merged_from_ids)
    return row


def merge_result_to_frames(merge_result: MergeResult) -> dict[str, pd.DataFrame]:
    """One DataFrame per domain, in a stable column order.

    Returns:
        dict[str, pd.DataFrame]: Domain name -> frame (empty frames keep their columns)
    """
    frames = {}
    for domain, records in merge_result.domains().items():
        columns = DISPLAY_COLUMNS[domain]
        frames[domain] = pd.DataFrame(
            [_row(record, columns) for record in records],
            columns=columns + PROVENANCE_COLUMNS,
        )
    return frames


def export_merge_result(merge_result: MergeResult, directory: str) -> list[Path]:
    """Write one ``<domain>.csv`` per domain into ``directory``.

    Returns:
        list[Path]: Written files
    """
    output_dir = Path(directory)
    output_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for domain, frame in merge_result_to_frames(merge_result).items():
        path = output_dir / f"{domain}.csv"
        frame.to_csv(path, index=False)
        written.append(path)
    logger.info("Exported %d domain file(s) to %s", len(written), output_dir)
    return written
