from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from gbp_hub.services.listing_sync import ConnectionCheck, SyncStatus, UpstreamError, sync_listings
from gbp_hub.services.reconciler import ExternalListing, LocalListing

ORG = "org_a"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeSource:
    def __init__(self, listings=None, *, connected=True, fetch_error=None):
        self.listings = listings or []
        self.connected = connected
        self.fetch_error = fetch_error
        self.fetch_calls = 0

    async def check_connection(self):
        if not self.connected:
            return ConnectionCheck(ok=False, message="Invalid refresh token. Please re-authenticate with Google.")
        return ConnectionCheck(ok=True, message="Connected successfully. Found 1 accounts.")

    async def fetch_listings(self):
        self.fetch_calls += 1
        if self.fetch_error:
            raise self.fetch_error
        return list(self.listings)


class InMemoryStore:
    def __init__(self, rows=None, *, fail_on=()):
        self.rows = {r.id: r for r in rows or []}
        self.fail_on = set(fail_on)
        self.writes = 0
        self._seq = 0

    @asynccontextmanager
    async def lock(self, organization_id):
        yield

    async def find_by_organization(self, organization_id):
        return [r for r in self.rows.values() if r.organization_id == organization_id]

    async def create(self, organization_id, fields):
        if fields["external_id"] in self.fail_on:
            raise RuntimeError("write rejected")
        self._seq += 1
        row = LocalListing(
            id=f"bpr_{self._seq}",
            organization_id=organization_id,
            external_id=fields["external_id"],
            display_name=fields["display_name"],
            status=fields["status"],
            is_verified=fields["is_verified"],
            last_synced_at=fields["last_synced_at"],
        )
        self.rows[row.id] = row
        self.writes += 1
        return row

    async def update(self, organization_id, listing_id, fields):
        row = self.rows[listing_id]
        if row.external_id in self.fail_on:
            raise RuntimeError("write rejected")
        row = replace(row, **fields)
        self.rows[listing_id] = row
        self.writes += 1
        return row


@pytest.mark.asyncio
async def test_first_sync_creates_listing():
    store = InMemoryStore()
    source = FakeSource([ExternalListing("loc/1", "Shop A")])

    report = await sync_listings(ORG, source=source, store=store, now=NOW)

    assert report.status == SyncStatus.SUCCESS
    assert (report.total_locations, report.synced_count, report.new_count, report.existing_count) == (1, 1, 1, 0)
    row = next(iter(store.rows.values()))
    assert row.status == "ACTIVE"
    assert row.is_verified is True
    assert row.last_synced_at == NOW


@pytest.mark.asyncio
async def test_existing_listing_updated_attributes_kept():
    existing = LocalListing(id="bpr_1", organization_id=ORG, external_id="loc/1", display_name="Shop A",
                            attributes={"selectedForAnalytics": True})
    store = InMemoryStore([existing])

    report = await sync_listings(ORG, source=FakeSource([ExternalListing("loc/1", "Shop A")]), store=store, now=NOW)

    assert report.new_count == 0
    assert report.existing_count == 1
    row = store.rows["bpr_1"]
    assert row.status == "VERIFIED"
    assert row.is_verified is True
    assert row.last_synced_at == NOW
    assert row.attributes == {"selectedForAnalytics": True}


@pytest.mark.asyncio
async def test_repeat_sync_is_idempotent():
    store = InMemoryStore()
    source = FakeSource([ExternalListing("loc/1", "Shop A"), ExternalListing("loc/2", "Shop B")])

    await sync_listings(ORG, source=source, store=store, now=NOW)
    second = await sync_listings(ORG, source=source, store=store, now=NOW)

    assert second.new_count == 0
    assert second.synced_count == 2
    assert len(store.rows) == 2


@pytest.mark.asyncio
async def test_one_failing_record_does_not_stop_the_rest():
    store = InMemoryStore(fail_on={"loc/2"})
    source = FakeSource([
        ExternalListing("loc/1", "Shop A"),
        ExternalListing("loc/2", "Shop B"),
        ExternalListing("loc/3", "Shop C"),
    ])

    report = await sync_listings(ORG, source=source, store=store, now=NOW)

    assert report.ok
    assert report.status == SyncStatus.PARTIAL
    assert report.total_locations == 3
    assert report.synced_count == 2
    assert report.failed_count == 1
    assert report.failures[0].external_id == "loc/2"
    assert {r.external_id for r in store.rows.values()} == {"loc/1", "loc/3"}


@pytest.mark.asyncio
async def test_auth_failure_applies_nothing():
    store = InMemoryStore()
    source = FakeSource([ExternalListing("loc/1", "Shop A")], connected=False)

    report = await sync_listings(ORG, source=source, store=store, now=NOW)

    assert report.status == SyncStatus.CONNECTION_FAILED
    assert report.error == "Google Business Profile API connection failed"
    assert "re-authenticate" in report.details
    assert source.fetch_calls == 0
    assert store.writes == 0


@pytest.mark.asyncio
async def test_fetch_failure_applies_nothing():
    store = InMemoryStore()
    source = FakeSource(fetch_error=UpstreamError("No Google Business accounts found"))

    report = await sync_listings(ORG, source=source, store=store, now=NOW)

    assert report.status == SyncStatus.CONNECTION_FAILED
    assert report.error == "Failed to fetch business locations from Google"
    assert report.details == "No Google Business accounts found"
    assert store.writes == 0


@pytest.mark.asyncio
async def test_unexpected_error_becomes_internal_report():
    class BrokenStore(InMemoryStore):
        async def find_by_organization(self, organization_id):
            raise RuntimeError("db down")

    report = await sync_listings(ORG, source=FakeSource([ExternalListing("loc/1", "A")]), store=BrokenStore(), now=NOW)

    assert report.status == SyncStatus.INTERNAL
    assert not report.ok
    assert report.error == "Failed to sync live Google Business Profile listings"
    # internal detail stays in the logs
    assert report.details is None


@pytest.mark.asyncio
async def test_write_failure_reports_no_sql_text():
    from sqlalchemy.exc import IntegrityError

    class RejectingStore(InMemoryStore):
        async def create(self, organization_id, fields):
            if fields["external_id"] == "loc/2":
                raise IntegrityError(
                    "INSERT INTO business_profiles (id, organization_id, external_id) VALUES ($1, $2, $3)",
                    ("bpr_x", ORG, "loc/2"),
                    Exception("duplicate key value violates unique constraint"),
                )
            return await super().create(organization_id, fields)

    source = FakeSource([ExternalListing("loc/1", "Shop A"), ExternalListing("loc/2", "Shop B")])

    report = await sync_listings(ORG, source=source, store=RejectingStore(), now=NOW)

    assert report.status == SyncStatus.PARTIAL
    failure = report.failures[0].as_dict()
    assert failure == {
        "external_id": "loc/2",
        "display_name": "Shop B",
        "error": "Failed to create listing",
        "code": "integrity_error",
    }
    assert "INSERT INTO" not in str(failure)
    assert "bpr_x" not in str(failure)


@pytest.mark.asyncio
async def test_unclassified_write_failure_code():
    store = InMemoryStore([LocalListing(id="bpr_1", organization_id=ORG, external_id="loc/1", display_name="Shop A")],
                          fail_on={"loc/1"})

    report = await sync_listings(ORG, source=FakeSource([ExternalListing("loc/1", "Shop A")]), store=store, now=NOW)

    assert report.failures[0].error == "Failed to update listing"
    assert report.failures[0].code == "internal_error"
    assert "write rejected" not in report.failures[0].error


@pytest.mark.asyncio
async def test_duplicate_ids_counted_in_raw_total():
    source = FakeSource([
        ExternalListing("loc/1", "Shop A"),
        ExternalListing("loc/1", "Shop A"),
        ExternalListing("loc/2", "Shop B"),
    ])

    report = await sync_listings(ORG, source=source, store=InMemoryStore(), now=NOW)

    assert report.total_locations == 3
    assert report.duplicate_count == 1
    assert report.synced_count == 2


@pytest.mark.asyncio
async def test_lock_held_from_read_through_every_write():
    events = []

    class RecordingStore(InMemoryStore):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.locked = False

        @asynccontextmanager
        async def lock(self, organization_id):
            events.append(("lock", organization_id))
            self.locked = True
            try:
                yield
            finally:
                self.locked = False
                events.append(("unlock", organization_id))

        async def find_by_organization(self, organization_id):
            events.append(("find", self.locked))
            return await super().find_by_organization(organization_id)

        async def create(self, organization_id, fields):
            events.append(("create", self.locked))
            return await super().create(organization_id, fields)

        async def update(self, organization_id, listing_id, fields):
            events.append(("update", self.locked))
            return await super().update(organization_id, listing_id, fields)

    store = RecordingStore([LocalListing(id="bpr_1", organization_id=ORG, external_id="loc/1", display_name="Shop A")])
    source = FakeSource([ExternalListing("loc/1", "Shop A"), ExternalListing("loc/2", "Shop B")])

    report = await sync_listings(ORG, source=source, store=store, now=NOW)

    assert report.status == SyncStatus.SUCCESS
    assert events == [
        ("lock", ORG),
        ("find", True),
        ("update", True),
        ("create", True),
        ("unlock", ORG),
    ]


@pytest.mark.asyncio
async def test_connection_failure_never_takes_lock():
    taken = []

    class RecordingStore(InMemoryStore):
        @asynccontextmanager
        async def lock(self, organization_id):
            taken.append(organization_id)
            yield

    await sync_listings(ORG, source=FakeSource(connected=False), store=RecordingStore(), now=NOW)

    assert taken == []
