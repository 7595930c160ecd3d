"""
Result reconciliation.

Folds a results snapshot into the per-goal view state. Each goal present in
the snapshot replaces the previous entry wholesale; goals the snapshot does
not mention keep their last value.
"""

from typing import Any, Dict, List, Mapping, Sequence

from pydantic import ValidationError

from assessment_client.assessment.models import GoalResult
from assessment_client.utils.exceptions import MalformedSnapshotError
from assessment_client.utils.logging import get_logger

logger = get_logger(__name__)


def validate_snapshot(entries: Sequence[Any]) -> List[GoalResult]:
    """
    Validate every snapshot entry into a GoalResult.

    Args:
        entries: Raw goal entries (mappings) or GoalResult instances

    Returns:
        Validated results in snapshot order

    Raises:
        MalformedSnapshotError: If any entry is invalid (e.g. has no name)
    """
    if isinstance(entries, (str, bytes, Mapping)) or not isinstance(entries, Sequence):
        raise MalformedSnapshotError("Snapshot goals must be a list")

    results: List[GoalResult] = []
    for index, entry in enumerate(entries):
        if isinstance(entry, GoalResult):
            results.append(entry)
            continue
        try:
            results.append(GoalResult.model_validate(entry))
        except ValidationError as e:
            name = entry.get("name") if isinstance(entry, Mapping) else None
            raise MalformedSnapshotError(
                f"Snapshot entry {index} is invalid: {e.error_count()} error(s)",
                entry_index=index,
                goal=name,
                errors=[err["msg"] for err in e.errors()],
            ) from e
    return results


def reconcile(current: Mapping[str, GoalResult], entries: Sequence[Any]) -> Dict[str, GoalResult]:
    """
    Merge a snapshot into the current results.

    The whole snapshot is validated before anything is applied, so a
    malformed snapshot leaves ``current`` exactly as it was. ``current`` is
    never mutated; a new dict is returned so observers can detect change by
    identity.

    Args:
        current: Results keyed by goal name
        entries: Goal entries of one snapshot

    Returns:
        New mapping with snapshot goals replaced

    Raises:
        MalformedSnapshotError: If the snapshot is structurally invalid
    """
    incoming = validate_snapshot(entries)

    merged = dict(current)
    for result in incoming:
        merged[result.name] = result

    logger.debug(
        f"Reconciled snapshot: {len(incoming)} goal(s) replaced, {len(merged)} known"
    )
    return merged


__all__ = ["reconcile", "validate_snapshot"]
