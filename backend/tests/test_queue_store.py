from datetime import datetime, timedelta, timezone

import pytest

from vetmed.services.mutations import QueuedMutation
from vetmed.services.queue_store import QueueBase, QueueStorageError, QueueStore

T0 = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def store():
    return QueueStore("sqlite://")


def entry(mutation_id: str, household_id: str = "h1", timestamp: datetime = T0) -> QueuedMutation:
    return QueuedMutation(
        id=mutation_id,
        type="inventory.update",
        payload={"item_id": "i1", "data": {"household_id": household_id, "quantity_change": -1}},
        timestamp=timestamp,
        household_id=household_id,
    )


def test_add_is_idempotent_by_id(store):
    assert store.add(entry("a")) is True
    assert store.add(entry("a")) is False
    assert store.count("h1") == 1


def test_list_keeps_enqueue_order(store):
    for mutation_id in ("c", "a", "b"):
        store.add(entry(mutation_id))
    # Clock stepped back before the last add: insertion order still wins
    store.add(entry("last", timestamp=T0 - timedelta(minutes=5)))
    assert [m.id for m in store.list_for_household("h1")] == ["c", "a", "b", "last"]


def test_list_is_scoped_to_household(store):
    store.add(entry("a", "h1"))
    store.add(entry("b", "h2"))
    assert [m.id for m in store.list_for_household("h2")] == ["b"]
    assert store.count() == 2


def test_put_get_delete(store):
    store.add(entry("a"))
    item = store.get("a")
    item.retries = 2
    item.last_error = "boom"
    store.put(item)

    reloaded = store.get("a")
    assert reloaded.retries == 2
    assert reloaded.last_error == "boom"
    assert reloaded.timestamp == T0

    store.delete("a")
    assert store.get("a") is None


def test_clear(store):
    store.add(entry("a"))
    store.add(entry("b"))
    store.add(entry("c", "h2"))
    assert store.clear("h1") == 2
    assert store.count("h1") == 0
    assert store.count("h2") == 1


class TestLease:
    def test_other_holder_blocked_until_expiry(self, store):
        assert store.acquire_lease("h1", "tab-a", 120, now=T0)
        assert not store.acquire_lease("h1", "tab-b", 120, now=T0 + timedelta(seconds=60))
        assert store.acquire_lease("h1", "tab-b", 120, now=T0 + timedelta(seconds=121))

    def test_holder_can_renew(self, store):
        assert store.acquire_lease("h1", "tab-a", 120, now=T0)
        assert store.acquire_lease("h1", "tab-a", 120, now=T0 + timedelta(seconds=100))
        assert not store.acquire_lease("h1", "tab-b", 120, now=T0 + timedelta(seconds=200))

    def test_release(self, store):
        store.acquire_lease("h1", "tab-a", 120, now=T0)
        store.release_lease("h1", "tab-b")  # not the holder: no effect
        assert not store.acquire_lease("h1", "tab-b", 120, now=T0)
        store.release_lease("h1", "tab-a")
        assert store.acquire_lease("h1", "tab-b", 120, now=T0)


def test_storage_failure_surfaces_as_queue_storage_error(store):

    QueueBase.metadata.drop_all(bind=store.engine)
    with pytest.raises(QueueStorageError):
        store.count("h1")
