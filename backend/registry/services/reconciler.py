"""Claim reconciler.

Computes the writes that bring the KV store and the spreadsheet into
agreement under last-writer-wins.

Algorithm per item id:
1. Only in KV -> write the KV record to the sheet.
2. Only in the sheet -> write the sheet record to KV.
3. In both -> the record with the strictly greater ``last_modified`` is
   written to the other store. Equal timestamps mean the item is already
   consistent and nothing is written.

Records are replaced whole; fields are never merged across sources. An item
is resolved to at most one direction per pass, so the two output lists are
disjoint. Pure function: no I/O, no clock reads.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

from registry.services.claim_types import ClaimRecord


@dataclass(frozen=True)
class ReconciliationPlan:
    """Writes produced by one reconciliation.

    Attributes:
        to_update_in_kv: Sheet records that must be written to KV.
        to_update_in_sheet: KV records that must be written to the sheet.
        in_sync: Items present in both stores with equal timestamps.
    """

    to_update_in_kv: list[ClaimRecord] = field(default_factory=list)
    to_update_in_sheet: list[ClaimRecord] = field(default_factory=list)
    in_sync: int = 0

    @property
    def is_empty(self) -> bool:
        """True when neither store needs writes."""
        return not self.to_update_in_kv and not self.to_update_in_sheet


def reconcile(
    kv_claims: Mapping[str, ClaimRecord],
    sheet_claims: Mapping[str, ClaimRecord],
) -> ReconciliationPlan:
    """Diff two claim snapshots and decide which side wins for each item.

    Output order follows the iteration order of kv_claims, then sheet_claims.

    Args:
        kv_claims: Item id -> record as read from the KV store.
        sheet_claims: Item id -> record as read from the spreadsheet.

    Returns:
        ReconciliationPlan with disjoint update lists.
    """
    to_update_in_kv: list[ClaimRecord] = []
    to_update_in_sheet: list[ClaimRecord] = []
    in_sync = 0

    for item_id, kv_claim in kv_claims.items():
        sheet_claim = sheet_claims.get(item_id)
        if sheet_claim is None:
            to_update_in_sheet.append(kv_claim)
        elif sheet_claim.last_modified > kv_claim.last_modified:
            to_update_in_kv.append(sheet_claim)
        elif kv_claim.last_modified > sheet_claim.last_modified:
            to_update_in_sheet.append(kv_claim)
        else:
            in_sync += 1

    for item_id, sheet_claim in sheet_claims.items():
        if item_id not in kv_claims:
            to_update_in_kv.append(sheet_claim)

    return ReconciliationPlan(
        to_update_in_kv=to_update_in_kv,
        to_update_in_sheet=to_update_in_sheet,
        in_sync=in_sync,
    )
