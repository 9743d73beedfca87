"""
Incremental merge of conversion-rate counters.

merge(existing, incoming) adds incoming counts onto matching existing rows and
recomputes the rate from the summed counts. The operation is commutative and
associative over disjoint lead batches, but NOT idempotent: merging the same
batch twice double-counts it. Callers guarantee each lead is merged once.
"""
from typing import Dict, List, Optional

from leadscore.scoring.base import RateRow, RateKey, compute_rate


def merge_rows(existing: RateRow, incoming: RateRow, batch_id: Optional[str] = None) -> RateRow:
    count = existing.past_total_count + incoming.past_total_count
    est = existing.past_total_est + incoming.past_total_est
    return RateRow(
        client_id=existing.client_id,
        key_field=existing.key_field,
        key_name=existing.key_name,
        past_total_count=count,
        past_total_est=est,
        conversion_rate=compute_rate(est, count),
        last_batch_id=batch_id or incoming.last_batch_id or existing.last_batch_id,
    )


def merge_conversion_rates(
    existing: List[RateRow],
    incoming: List[RateRow],
    batch_id: Optional[str] = None,
) -> List[RateRow]:
    """
    Merge incoming rows into existing ones.

    Existing rows without an incoming counterpart pass through unchanged.
    Incoming rows without an existing counterpart are taken as-is (stamped with
    batch_id when given). Output order: existing order, then new keys.
    """
    merged: Dict[RateKey, RateRow] = {row.key: row for row in existing}

    for row in incoming:
        current = merged.get(row.key)
        if current is None:
            merged[row.key] = RateRow(
                client_id=row.client_id,
                key_field=row.key_field,
                key_name=row.key_name,
                past_total_count=row.past_total_count,
                past_total_est=row.past_total_est,
                conversion_rate=row.conversion_rate,
                last_batch_id=batch_id or row.last_batch_id,
            )
        else:
            merged[row.key] = merge_rows(current, row, batch_id)

    return list(merged.values())


def changed_rows(before: List[RateRow], after: List[RateRow]) -> List[RateRow]:
    """Rows of `after` that are new or whose counters differ from `before`."""
    previous = {row.key: row for row in before}
    changed = []
    for row in after:
        old = previous.get(row.key)
        if (old is None
                or old.past_total_count != row.past_total_count
                or old.past_total_est != row.past_total_est
                or old.conversion_rate != row.conversion_rate):
            changed.append(row)
    return changed
