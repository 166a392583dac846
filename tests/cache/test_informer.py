"""
Tests for the Informer
"""

# Standard
import threading

# Third Party
import pytest

# Local
from tenantop import constants
from tenantop.cache import Informer
from tenantop.exceptions import StoreError
from tenantop.objects import KubeObject
from tenantop.store import KubeEventType, KubeWatchEvent
from tenantop.test_helpers.helpers import (
    MockStore,
    library_config,
    make_tenant,
    wait_until,
)

## Helpers #####################################################################


class Recorder:
    """Collects handler calls as (type, name) tuples"""

    def __init__(self):
        self.calls = []

    def on_add(self, obj):
        self.calls.append(("add", obj.name))

    def on_update(self, old, new):
        self.calls.append(("update", new.name))

    def on_delete(self, obj):
        self.calls.append(("delete", obj.name))


def make_informer(store, **kwargs):
    kwargs.setdefault("resync_period", 0)
    return Informer(
        store, constants.TENANT_KIND, constants.TENANT_API_VERSION, **kwargs
    )


def register(informer):
    recorder = Recorder()
    informer.add_event_handler(
        on_add=recorder.on_add,
        on_update=recorder.on_update,
        on_delete=recorder.on_delete,
    )
    return recorder


## Cache Updates ###############################################################


def test_list_and_replace_populates_cache():
    store = MockStore(resources=[make_tenant("a"), make_tenant("b")])
    informer = make_informer(store)
    recorder = register(informer)
    assert not informer.has_synced()

    version = informer.list_and_replace()
    assert version == store.resource_version
    assert informer.has_synced()
    assert sorted(recorder.calls) == [("add", "a"), ("add", "b")]
    assert informer.get("a").spec["enabled"] is True
    assert informer.get("missing") is None


def test_list_and_replace_notifies_differences():
    store = MockStore(resources=[make_tenant("a"), make_tenant("b")])
    informer = make_informer(store)
    informer.list_and_replace()
    recorder = register(informer)
    recorder.calls.clear()

    current = store.get_obj(constants.TENANT_KIND, "a")
    current["spec"]["enabled"] = False
    store.update_object(current)
    store.delete_object(constants.TENANT_KIND, "b")
    store.create_object(make_tenant("c"))

    informer.list_and_replace()
    assert sorted(recorder.calls) == [("add", "c"), ("delete", "b"), ("update", "a")]


def test_late_handler_receives_existing_objects():
    store = MockStore(resources=[make_tenant("a")])
    informer = make_informer(store)
    informer.list_and_replace()
    assert register(informer).calls == [("add", "a")]


def test_get_returns_copies():
    store = MockStore(resources=[make_tenant("a")])
    informer = make_informer(store)
    informer.list_and_replace()
    informer.get("a").definition["spec"]["enabled"] = False
    assert informer.get("a").spec["enabled"] is True


def test_list_with_selector():
    labeled = make_tenant("a")
    labeled["metadata"]["labels"] = {"tier": "gold"}
    store = MockStore(resources=[labeled, make_tenant("b")])
    informer = make_informer(store)
    informer.list_and_replace()
    assert [obj.name for obj in informer.list("tier=gold")] == ["a"]
    assert len(informer.list()) == 2


def test_handle_event_ignores_stale_versions():
    store = MockStore(resources=[make_tenant("a")])
    informer = make_informer(store)
    informer.list_and_replace()
    recorder = register(informer)
    recorder.calls.clear()

    cached = informer.get("a").definition
    stale = dict(cached, metadata=dict(cached["metadata"], resourceVersion="0"))
    informer.handle_event(KubeWatchEvent(KubeEventType.MODIFIED, KubeObject(stale)))
    assert not recorder.calls

    newer = dict(cached, metadata=dict(cached["metadata"], resourceVersion="1000"))
    informer.handle_event(KubeWatchEvent(KubeEventType.MODIFIED, KubeObject(newer)))
    assert recorder.calls == [("update", "a")]
    assert informer.get("a").resource_version == "1000"


def test_handle_event_delete():
    store = MockStore(resources=[make_tenant("a")])
    informer = make_informer(store)
    informer.list_and_replace()
    recorder = register(informer)
    recorder.calls.clear()

    event = KubeWatchEvent(KubeEventType.DELETED, KubeObject(make_tenant("a")))
    informer.handle_event(event)
    informer.handle_event(event)
    assert recorder.calls == [("delete", "a")]
    assert informer.get("a") is None


def test_resync_redelivers_cache():
    store = MockStore(resources=[make_tenant("a"), make_tenant("b")])
    informer = make_informer(store)
    informer.list_and_replace()
    recorder = register(informer)
    recorder.calls.clear()
    informer.resync()
    assert sorted(recorder.calls) == [("update", "a"), ("update", "b")]


## Thread ######################################################################


@pytest.mark.timeout(10)
def test_informer_thread_follows_watch():
    store = MockStore(resources=[make_tenant("a")])
    informer = make_informer(store)
    recorder = register(informer)
    informer.start_thread()
    try:
        assert informer.wait_for_sync(timeout=5)
        store.create_object(make_tenant("b"))
        assert wait_until(lambda: informer.get("b") is not None)
        store.delete_object(constants.TENANT_KIND, "a")
        assert wait_until(lambda: informer.get("a") is None)
    finally:
        informer.stop()
        informer.join(5)
    assert not informer.is_alive()
    assert ("add", "b") in recorder.calls
    assert ("delete", "a") in recorder.calls


@pytest.mark.timeout(10)
def test_informer_thread_resyncs():
    store = MockStore(resources=[make_tenant("a")])
    informer = make_informer(store, resync_period=0.1)
    recorder = register(informer)
    informer.start_thread()
    try:
        assert wait_until(lambda: recorder.calls.count(("update", "a")) >= 2)
    finally:
        informer.stop()
        informer.join(5)


@pytest.mark.timeout(10)
def test_informer_gives_up_after_retries():
    """A list that keeps failing marks the informer failed and stops the
    shared shutdown event
    """
    store = MockStore(list_fail=StoreError)
    shutdown = threading.Event()
    with library_config(watch_retry_count=1, watch_retry_delay="0.01s"):
        informer = make_informer(store, shutdown=shutdown)
        informer.start_thread()
        informer.join(5)
    assert informer.failed
    assert not informer.has_synced()
    assert shutdown.is_set()
    assert store.list_objects.call_count == 2


@pytest.mark.timeout(10)
def test_informer_recovers_from_transient_failure():
    store = MockStore(resources=[make_tenant("a")])
    real_list = store.list_objects.side_effect
    calls = []

    def flaky_list(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise StoreError("flake")
        return real_list(*args, **kwargs)

    store.list_objects.side_effect = flaky_list
    with library_config(watch_retry_delay="0.01s"):
        informer = make_informer(store)
    informer.start_thread()
    try:
        assert informer.wait_for_sync(timeout=5)
        assert informer.get("a") is not None
        assert not informer.failed
    finally:
        informer.stop()
        informer.join(5)
