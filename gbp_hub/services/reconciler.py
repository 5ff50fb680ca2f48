"""
Listing reconciliation: external GBP locations vs. locally stored listings.

Pure function over snapshots; it reads nothing and writes nothing. The sync
driver applies the operations it returns.

Matching, per incoming record:
  (a) external_id equality
  (b) display-name equality, only against listings not yet linked to an
      external id, and only when exactly one such listing carries that name.

Absence is not deletion: local listings missing from the fetch get no
operation at all.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Union

log = logging.getLogger(__name__)


class ListingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    VERIFIED = "VERIFIED"


@dataclass(frozen=True)
class ExternalListing:
    external_id: str
    display_name: str


@dataclass(frozen=True)
class LocalListing:
    id: str
    organization_id: str
    external_id: str | None
    display_name: str
    status: str = ListingStatus.ACTIVE.value
    is_verified: bool = False
    last_synced_at: datetime | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CreateListing:
    external_id: str
    display_name: str
    fields: dict[str, Any]


@dataclass(frozen=True)
class UpdateListing:
    target_id: str
    external_id: str
    display_name: str
    fields: dict[str, Any]


Operation = Union[CreateListing, UpdateListing]


def _create_fields(incoming: ExternalListing, now: datetime) -> dict[str, Any]:
    return {
        "external_id": incoming.external_id,
        "display_name": incoming.display_name,
        "status": ListingStatus.ACTIVE.value,
        "is_verified": True,
        "last_synced_at": now,
    }


def _update_fields(now: datetime) -> dict[str, Any]:
    # attributes / display_name are never part of a sync update; a name-fallback
    # match adds external_id on top of these (see reconcile)
    return {
        "last_synced_at": now,
        "status": ListingStatus.VERIFIED.value,
        "is_verified": True,
    }


def reconcile(
    organization_id: str,
    existing: Iterable[LocalListing],
    incoming: Iterable[ExternalListing],
    *,
    now: datetime,
    display_name_fallback: bool = True,
) -> list[Operation]:
    """
    Return the create/update operations that bring `existing` in line with
    `incoming` for one organization.

    Listings belonging to another organization are ignored. Duplicate
    external ids within `incoming` are collapsed (first occurrence wins).
    """
    scoped: list[LocalListing] = []
    for listing in existing:
        if listing.organization_id != organization_id:
            log.warning(
                "reconcile: ignoring listing %s from organization %s (scope %s)",
                listing.id, listing.organization_id, organization_id,
            )
            continue
        scoped.append(listing)

    by_external_id = {l.external_id: l for l in scoped if l.external_id}
    unlinked_by_name: dict[str, list[LocalListing]] = {}
    for l in scoped:
        if not l.external_id:
            unlinked_by_name.setdefault(l.display_name, []).append(l)

    ops: list[Operation] = []
    seen_external_ids: set[str] = set()
    claimed_ids: set[str] = set()

    for rec in incoming:
        if rec.external_id in seen_external_ids:
            log.info("reconcile: duplicate external id %s in fetch, skipped", rec.external_id)
            continue
        seen_external_ids.add(rec.external_id)

        match = by_external_id.get(rec.external_id)
        linked_by_name = False

        if match is None and display_name_fallback:
            candidates = [c for c in unlinked_by_name.get(rec.display_name, []) if c.id not in claimed_ids]
            if len(candidates) == 1:
                match = candidates[0]
                linked_by_name = True
            elif len(candidates) > 1:
                log.warning(
                    "reconcile: %d unlinked listings named %r, creating a new listing for %s",
                    len(candidates), rec.display_name, rec.external_id,
                )

        if match is None:
            ops.append(CreateListing(
                external_id=rec.external_id,
                display_name=rec.display_name,
                fields=_create_fields(rec, now),
            ))
            continue

        claimed_ids.add(match.id)
        fields = _update_fields(now)
        if linked_by_name:
            # name-matched listings also get external_id so later passes match on it;
            # this is the only field besides status and sync time an update ever sets
            fields["external_id"] = rec.external_id
        ops.append(UpdateListing(
            target_id=match.id,
            external_id=rec.external_id,
            display_name=rec.display_name,
            fields=fields,
        ))

    return ops
