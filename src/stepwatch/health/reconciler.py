"""
Step-record reconciliation.

Turns a raw, possibly paginated and duplicated, multi-source stream of
:class:`StepRecord` values into one authoritative count:

1. records are de-duplicated by ``id`` (first occurrence wins);
2. every first-seen record adds to its source's diagnostic total;
3. only records from the preferred source add to ``total`` and to the hour
   bucket of their *start* time.

A record spanning an hour boundary is attributed entirely to the hour it
starts in.  If the stream raises part way, the aggregate built so far is
returned with ``complete=False`` instead of being thrown away.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import tzinfo

from loguru import logger

from .models import ReconcileResult, StepRecord, as_utc
from .timebucket import hour_index, to_local


def _is_well_formed(record: object) -> bool:
    if not isinstance(record, StepRecord):
        return False
    if not record.id or not record.source_id:
        return False
    if isinstance(record.count, bool) or not isinstance(record.count, int) or record.count < 0:
        return False
    try:
        return as_utc(record.end_time) >= as_utc(record.start_time)
    except TypeError:
        # naive vs aware comparison
        return False


def reconcile(
    records: Iterable[StepRecord],
    preferred_source: str,
    zone: tzinfo,
) -> ReconcileResult:
    """Deduplicate, source-filter and hour-bucket *records*.

    Args:
        records: Any iterable, typically a lazy multi-page read.  It is
            drained completely unless it raises.
        preferred_source: The only source whose steps are authoritative.
        zone: Zone used to find each record's local start hour.
    """
    result = ReconcileResult()
    seen: set[str] = set()
    iterator = iter(records)

    while True:
        try:
            record = next(iterator)
        except StopIteration:
            break
        except Exception as e:
            result.complete = False
            result.error = f"{type(e).__name__}: {e}"
            logger.warning(
                f"Record stream failed after {result.unique_records} unique records; keeping partial aggregate: {e}"
            )
            break

        if not _is_well_formed(record):
            result.malformed += 1
            logger.debug(f"Dropping malformed record: {record!r}")
            continue

        if record.id in seen:
            result.duplicates += 1
            logger.debug(f"Duplicate record detected: {record.id}")
            continue
        seen.add(record.id)
        result.unique_records += 1

        result.by_source[record.source_id] = result.by_source.get(record.source_id, 0) + record.count

        if record.source_id != preferred_source:
            logger.trace(f"Skipping {record.count} steps from {record.source_id} (not preferred source)")
            continue

        hour = hour_index(record.start_time, zone)
        result.total += record.count
        result.by_hour[hour] = result.by_hour.get(hour, 0) + record.count
        logger.trace(f"+ {record.count} steps from {record.source_id} at {to_local(record.start_time, zone)}")

    _log_summary(result, preferred_source)
    return result


def _log_summary(result: ReconcileResult, preferred_source: str) -> None:
    logger.debug(
        f"Reconciled {result.unique_records} unique records "
        f"({result.duplicates} duplicates, {result.malformed} malformed): total={result.total}"
    )
    for source, steps in sorted(result.by_source.items()):
        status = "COUNTED" if source == preferred_source else "IGNORED"
        logger.debug(f"  {source}: {steps} steps [{status}]")
