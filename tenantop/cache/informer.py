"""
The Informer keeps an eventually consistent, read-only copy of every object of
one kind by listing the kind and then following the store's watch stream. It
notifies registered handlers of every change and periodically re-delivers the
whole cache so missed notifications are healed.
"""

# Standard
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
import copy
import threading
import time

# First Party
import alog

# Local
from .. import config
from ..exceptions import ResourceExpiredError, StoreError
from ..labels import matches_requirements, parse_label_selector
from ..objects import KubeObject, key_for
from ..store import KubeEventType, KubeWatchEvent, StoreBase
from ..threads import ThreadBase
from ..utils import parse_time_delta

log = alog.use_channel("INFRM")


@dataclass
class ResourceEventHandler:
    """Callbacks invoked by the informer. Any of them may be omitted."""

    on_add: Optional[Callable[[KubeObject], None]] = None
    on_update: Optional[Callable[[KubeObject, KubeObject], None]] = None
    on_delete: Optional[Callable[[KubeObject], None]] = None


class Informer(ThreadBase):  # pylint: disable=too-many-instance-attributes
    """The Informer thread lists and watches one kind through a store"""

    def __init__(  # pylint: disable=too-many-arguments
        self,
        store: StoreBase,
        kind: str,
        api_version: str,
        namespace: Optional[str] = None,
        resync_period: Optional[float] = None,
        shutdown: Optional[threading.Event] = None,
    ):
        """
        Args:
            store:  StoreBase
                The store to list and watch
            kind:  str
                The kind to mirror
            api_version:  str
                The api_version of the kind
            namespace:  Optional[str]
                Namespace to restrict to, or None for all
            resync_period:  Optional[float]
                Seconds between full re-deliveries of the cache. Defaults to
                the resync_period config. Zero disables resyncs.
            shutdown:  Optional[threading.Event]
                Shared shutdown event
        """
        super().__init__(
            name=f"informer_{api_version}_{kind}", daemon=True, shutdown=shutdown
        )
        self.store = store
        self.kind = kind
        self.api_version = api_version
        self.namespace = namespace
        if resync_period is None:
            resync_period = parse_time_delta(config.resync_period).total_seconds()
        self.resync_period = resync_period

        self._cache: Dict[str, dict] = {}
        self._lock = threading.RLock()
        self._synced = threading.Event()
        self._handlers: List[ResourceEventHandler] = []
        self.failed = False

        self.retry_delay = parse_time_delta(config.watch_retry_delay).total_seconds()
        self.attempts_left = config.watch_retry_count

    ## Handlers ################################################################

    def add_event_handler(
        self,
        on_add: Optional[Callable[[KubeObject], None]] = None,
        on_update: Optional[Callable[[KubeObject, KubeObject], None]] = None,
        on_delete: Optional[Callable[[KubeObject], None]] = None,
    ) -> ResourceEventHandler:
        """Register callbacks for changes to the cache. Handlers registered
        after the initial list receive an add for every cached object.
        """
        handler = ResourceEventHandler(on_add, on_update, on_delete)
        with self._lock:
            self._handlers.append(handler)
            existing = list(self._cache.values())
        if on_add is not None:
            for manifest in existing:
                on_add(KubeObject(copy.deepcopy(manifest)))
        return handler

    ## Reads ###################################################################

    def get(self, key: str) -> Optional[KubeObject]:
        """Get a copy of the cached object with the given key"""
        with self._lock:
            manifest = self._cache.get(key)
            if manifest is None:
                return None
            return KubeObject(copy.deepcopy(manifest))

    def list(self, label_selector: Optional[str] = None) -> List[KubeObject]:
        """Get copies of every cached object matching the selector"""
        requirements = parse_label_selector(label_selector)
        with self._lock:
            return [
                KubeObject(copy.deepcopy(manifest))
                for manifest in self._cache.values()
                if matches_requirements(
                    (manifest.get("metadata") or {}).get("labels") or {}, requirements
                )
            ]

    def has_synced(self) -> bool:
        return self._synced.is_set()

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        return self._synced.wait(timeout)

    ## Cache Updates ###########################################################

    def list_and_replace(self) -> Optional[str]:
        """List the kind and replace the cache content with the result,
        notifying handlers of the differences

        Returns:
            resource_version:  Optional[str]
                The version of the list to start watching from
        """
        items, resource_version = self.store.list_objects(
            self.kind, self.api_version, namespace=self.namespace
        )
        listed = {key_for(item): item for item in items}
        notifications = []
        with self._lock:
            previous = self._cache
            self._cache = listed
            for key, manifest in listed.items():
                old = previous.get(key)
                if old is None:
                    notifications.append((KubeEventType.ADDED, None, manifest))
                elif _resource_version(old) != _resource_version(manifest):
                    notifications.append((KubeEventType.MODIFIED, old, manifest))
            for key, old in previous.items():
                if key not in listed:
                    notifications.append((KubeEventType.DELETED, old, None))
            self._synced.set()

        log.debug(
            "Listed %d %s/%s at version %s",
            len(listed),
            self.api_version,
            self.kind,
            resource_version,
        )
        for event_type, old, new in notifications:
            self._notify(event_type, old, new)
        return resource_version

    def handle_event(self, event: KubeWatchEvent):
        """Apply a single watch event to the cache"""
        manifest = event.resource.definition
        key = event.resource.key
        with self._lock:
            current = self._cache.get(key)
            if event.type == KubeEventType.DELETED:
                if current is None:
                    log.debug3("Ignoring delete of uncached %s", key)
                    return
                del self._cache[key]
                notification = (KubeEventType.DELETED, current, None)
            else:
                if current is not None and not _is_newer(manifest, current):
                    log.debug3("Ignoring stale %s event for %s", event.type.value, key)
                    return
                self._cache[key] = manifest
                notification = (
                    KubeEventType.ADDED if current is None else KubeEventType.MODIFIED,
                    current,
                    manifest,
                )
        log.debug2("Applied %s for %s", event.type.value, key)
        self._notify(*notification)

    def resync(self):
        """Deliver every cached object to the update handlers"""
        with self._lock:
            cached = list(self._cache.values())
        log.debug2("Resyncing %d %s objects", len(cached), self.kind)
        for manifest in cached:
            self._notify(KubeEventType.MODIFIED, manifest, manifest)

    ## Thread ##################################################################

    def run(self):
        """The Informer's control loop lists the kind, then follows the watch
        stream from the list version. Watch failures mark the cache as not
        synced and cause a relist after the retry delay.
        """
        while not self.should_stop():
            try:
                resource_version = self.list_and_replace()
                self.attempts_left = config.watch_retry_count
                self._watch(resource_version)
            except ResourceExpiredError:
                log.debug2("Watch of %s expired. Relisting.", self.kind)
            except StoreError as err:
                self._synced.clear()
                log.info(
                    "Exception raised when attempting to watch %s: %s",
                    self.kind,
                    repr(err),
                    exc_info=True,
                )
                if self.attempts_left <= 0:
                    log.error(
                        "Unable to watch %s within %d attempts",
                        self.kind,
                        config.watch_retry_count,
                    )
                    self.failed = True
                    self.stop_thread()
                    return
                if not self.wait_on_shutdown(self.retry_delay):
                    return
                self.attempts_left -= 1
                log.info("Restarting watch with %d attempts left", self.attempts_left)

    def stop(self):
        """Stop following the watch stream and exit the thread"""
        self.stop_thread()

    ## Implementation Details ##################################################

    def _watch(self, resource_version: Optional[str]):
        """Follow the watch stream until stopped, resyncing on schedule"""
        watch_timeout = float(config.watch_timeout_seconds)
        next_resync = None
        if self.resync_period:
            next_resync = time.monotonic() + self.resync_period
        while not self.should_stop():
            timeout = watch_timeout
            if next_resync is not None:
                timeout = max(min(timeout, next_resync - time.monotonic()), 0.01)
            for event in self.store.watch_objects(
                self.kind,
                self.api_version,
                namespace=self.namespace,
                resource_version=resource_version,
                timeout_seconds=timeout,
                stop_event=self.shutdown,
            ):
                self.handle_event(event)
                resource_version = event.resource.resource_version or resource_version
                if next_resync is not None and time.monotonic() >= next_resync:
                    break

            if next_resync is not None and time.monotonic() >= next_resync:
                self.resync()
                next_resync = time.monotonic() + self.resync_period

    def _notify(
        self, event_type: KubeEventType, old: Optional[dict], new: Optional[dict]
    ):
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            if event_type == KubeEventType.ADDED and handler.on_add:
                handler.on_add(KubeObject(copy.deepcopy(new)))
            elif event_type == KubeEventType.MODIFIED and handler.on_update:
                handler.on_update(
                    KubeObject(copy.deepcopy(old)), KubeObject(copy.deepcopy(new))
                )
            elif event_type == KubeEventType.DELETED and handler.on_delete:
                handler.on_delete(KubeObject(copy.deepcopy(old)))


def _resource_version(manifest: dict) -> Optional[str]:
    return (manifest.get("metadata") or {}).get("resourceVersion")


def _is_newer(candidate: dict, current: dict) -> bool:
    """Whether the candidate manifest is a later version than the current one.
    Versions are opaque strings, but numeric versions are compared as numbers.
    """
    candidate_version = _resource_version(candidate)
    current_version = _resource_version(current)
    if candidate_version is None or current_version is None:
        return True
    try:
        return int(candidate_version) > int(current_version)
    except ValueError:
        return candidate_version != current_version
