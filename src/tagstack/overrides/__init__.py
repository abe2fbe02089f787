"""
Override reconciliation for tagstack.

Converts between a final composed item list and the sparse
base + overrides + deletions representation stored per tenant.
"""

from tagstack.overrides.helpers import (
    DerivedOverrides,
    Entity,
    OverrideMap,
    apply_override_snapshot,
    build_id_map,
    clone_item,
    compose_with_overrides,
    derive_overrides_from_final,
    ensure_id_added,
    ensure_id_removed,
    id_map_to_list,
    item_id,
    reconcile_legacy_final_items,
    upsert_override_map,
)
from tagstack.overrides.snapshot import SNAPSHOT_VERSION, OverrideSnapshot

__all__ = [
    "DerivedOverrides",
    "Entity",
    "OverrideMap",
    "OverrideSnapshot",
    "SNAPSHOT_VERSION",
    "apply_override_snapshot",
    "build_id_map",
    "clone_item",
    "compose_with_overrides",
    "derive_overrides_from_final",
    "ensure_id_added",
    "ensure_id_removed",
    "id_map_to_list",
    "item_id",
    "reconcile_legacy_final_items",
    "upsert_override_map",
]
