"""
The DryRunStore implements the Store interface but does not actually interact
with the cluster and instead holds the state of the cluster in a local map. It
emulates the parts of the API server the operators rely on: resourceVersion
based optimistic concurrency, label selectors, watch streams and owner
reference garbage collection.
"""

# Standard
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Tuple
import copy
import threading
import time
import uuid

# First Party
import alog

# Local
from ..exceptions import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ResourceExpiredError,
)
from ..labels import matches_requirements, parse_label_selector
from ..objects import KubeObject
from ..utils import format_timestamp
from .base import StoreBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("DRY-RUN")

# Number of change events retained for watches started from an old version
HISTORY_SIZE = 1000

# Max seconds a watch blocks before re-checking its stop conditions
WATCH_POLL_INTERVAL = 0.1

# Metadata fields owned by the store rather than the writer
_SERVER_METADATA = ("resourceVersion", "uid", "creationTimestamp", "generation")


class DryRunStore(StoreBase):
    """
    Store which keeps the whole cluster in memory
    """

    def __init__(self, resources: Optional[List[dict]] = None):
        self._cluster_content = {}
        self._resource_version = 0
        self._history: List[Tuple[int, KubeEventType, dict]] = []
        self._history_first_version = 1
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)

        for resource in resources or []:
            self._store(self._initialize(copy.deepcopy(resource)), record=False)

    ## Interface ###############################################################

    def list_objects(
        self,
        kind,
        api_version,
        namespace=None,
        label_selector=None,
    ):  # pylint: disable=too-many-arguments
        log.debug2(
            "DRY RUN list_objects of [%s/%s] in [%s] with [%s]",
            api_version,
            kind,
            namespace,
            label_selector,
        )
        requirements = parse_label_selector(label_selector)
        with self._lock:
            matches = [
                copy.deepcopy(resource)
                for resource in self._iter_objects(kind, api_version, namespace)
                if matches_requirements(
                    (resource.get("metadata") or {}).get("labels") or {},
                    requirements,
                )
            ]
            return matches, str(self._resource_version)

    def get_object(self, kind, name, namespace=None, api_version=None):
        log.debug3("DRY RUN get_object of [%s/%s] in [%s]", kind, name, namespace)
        with self._lock:
            current = self._lookup(kind, name, namespace, api_version)
            return copy.deepcopy(current) if current is not None else None

    def create_object(self, resource_definition):
        res_id = KubeObject(resource_definition)
        log.debug("DRY RUN create %s", res_id)
        with self._lock:
            if (
                self._lookup(res_id.kind, res_id.name, res_id.namespace, None)
                is not None
            ):
                raise AlreadyExistsError(f"{res_id} already exists")
            resource = self._initialize(copy.deepcopy(resource_definition))
            self._store(resource)
            return copy.deepcopy(resource)

    def update_object(self, resource_definition):
        return self._update(resource_definition, status_only=False)

    def update_status(self, resource_definition):
        return self._update(resource_definition, status_only=True)

    def delete_object(self, kind, name, namespace=None, api_version=None):
        log.debug("DRY RUN delete [%s/%s] in [%s]", kind, name, namespace)
        with self._lock:
            current = self._lookup(kind, name, namespace, api_version)
            if current is None:
                return False
            self._delete_cascade(current)
            return True

    def delete_collection(
        self,
        kind,
        api_version,
        namespace=None,
        label_selector=None,
    ):  # pylint: disable=too-many-arguments
        log.debug(
            "DRY RUN delete_collection [%s/%s] in [%s] with [%s]",
            api_version,
            kind,
            namespace,
            label_selector,
        )
        with self._lock:
            requirements = parse_label_selector(label_selector)
            matches = [
                resource
                for resource in list(self._iter_objects(kind, api_version, namespace))
                if matches_requirements(
                    (resource.get("metadata") or {}).get("labels") or {},
                    requirements,
                )
            ]
            deleted = 0
            for resource in matches:
                # An earlier cascade may already have removed this one
                res_id = KubeObject(resource)
                if self._lookup(kind, res_id.name, res_id.namespace, api_version):
                    self._delete_cascade(resource)
                    deleted += 1
            return deleted

    def watch_objects(  # pylint: disable=too-many-arguments,too-many-locals
        self,
        kind,
        api_version,
        namespace=None,
        resource_version=None,
        timeout_seconds=None,
        stop_event=None,
    ) -> Iterator[KubeWatchEvent]:
        """Replay the change history after resource_version and then block
        for new changes
        """
        end_time = None
        if timeout_seconds:
            end_time = time.monotonic() + timeout_seconds

        with self._lock:
            last_version = (
                int(resource_version) if resource_version else self._resource_version
            )

        while not (stop_event is not None and stop_event.is_set()):
            with self._changed:
                if last_version + 1 < self._history_first_version:
                    raise ResourceExpiredError(
                        f"resourceVersion {last_version} is too old"
                    )
                start_index = last_version + 1 - self._history_first_version
                pending = self._history[start_index:]
                if not pending:
                    wait_time = WATCH_POLL_INTERVAL
                    if end_time is not None:
                        wait_time = min(wait_time, max(end_time - time.monotonic(), 0))
                    self._changed.wait(timeout=wait_time)

            for version, event_type, manifest in pending:
                last_version = version
                if _same_kind(manifest, kind, api_version) and (
                    namespace is None
                    or (manifest.get("metadata") or {}).get("namespace") == namespace
                ):
                    event = KubeWatchEvent(
                        type=event_type, resource=KubeObject(copy.deepcopy(manifest))
                    )
                    log.debug3("Yielding event %s", event)
                    yield event

            if end_time is not None and time.monotonic() >= end_time:
                return

    @property
    def resource_version(self) -> str:
        """The latest resourceVersion handed out"""
        with self._lock:
            return str(self._resource_version)

    ## Implementation Details ##################################################

    def _iter_objects(self, kind, api_version, namespace):
        namespaces = (
            [namespace] if namespace is not None else list(self._cluster_content)
        )
        for nspace in namespaces:
            kind_entries = self._cluster_content.get(nspace, {}).get(kind, {})
            for api_ver, entries in kind_entries.items():
                if api_version is None or api_ver == api_version:
                    yield from entries.values()

    def _lookup(self, kind, name, namespace, api_version) -> Optional[dict]:
        kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
        for api_ver, entries in kind_entries.items():
            if name in entries and (api_version is None or api_ver == api_version):
                return entries[name]
        return None

    def _initialize(self, resource: dict) -> dict:
        """Fill in the server-owned metadata of a new object"""
        metadata = resource.setdefault("metadata", {})
        metadata["uid"] = metadata.get("uid") or str(uuid.uuid4())
        metadata["creationTimestamp"] = format_timestamp(datetime.now(timezone.utc))
        metadata["generation"] = 1
        return resource

    def _store(self, resource: dict, record: bool = True, is_new: bool = True):
        res_id = KubeObject(resource)
        self._resource_version += 1
        resource["metadata"]["resourceVersion"] = str(self._resource_version)
        self._cluster_content.setdefault(res_id.namespace, {}).setdefault(
            res_id.kind, {}
        ).setdefault(res_id.api_version, {})[res_id.name] = resource
        event_type = KubeEventType.ADDED if is_new else KubeEventType.MODIFIED
        if record:
            self._record(event_type, resource)
        else:
            self._history_first_version = self._resource_version + 1

    def _record(self, event_type: KubeEventType, resource: dict):
        self._history.append(
            (self._resource_version, event_type, copy.deepcopy(resource))
        )
        if len(self._history) > HISTORY_SIZE:
            trimmed = len(self._history) - HISTORY_SIZE
            del self._history[:trimmed]
            self._history_first_version += trimmed
        self._changed.notify_all()

    def _update(self, resource_definition: dict, status_only: bool) -> dict:
        res_id = KubeObject(resource_definition)
        log.debug(
            "DRY RUN %s %s", "update_status" if status_only else "update", res_id
        )
        with self._lock:
            current = self._lookup(
                res_id.kind, res_id.name, res_id.namespace, res_id.api_version
            )
            if current is None:
                raise NotFoundError(f"{res_id} not found")
            current_version = current["metadata"]["resourceVersion"]
            if res_id.resource_version and str(res_id.resource_version) != str(
                current_version
            ):
                raise ConflictError(
                    f"{res_id} resourceVersion {res_id.resource_version} "
                    f"!= {current_version}"
                )

            updated = copy.deepcopy(current)
            if status_only:
                updated["status"] = copy.deepcopy(resource_definition.get("status"))
                if updated.get("status") is None:
                    updated.pop("status")
            else:
                updated = copy.deepcopy(resource_definition)
                if "status" in current:
                    updated["status"] = copy.deepcopy(current["status"])
                else:
                    updated.pop("status", None)
                for field in _SERVER_METADATA:
                    updated["metadata"][field] = current["metadata"].get(field)
                if updated.get("spec") != current.get("spec"):
                    updated["metadata"]["generation"] = (
                        current["metadata"].get("generation") or 0
                    ) + 1

            # No-op writes do not produce a new version or event
            if updated == current:
                log.debug2("No change for %s", res_id)
                return copy.deepcopy(current)

            self._store(updated, is_new=False)
            return copy.deepcopy(updated)

    def _delete_cascade(self, resource: dict):
        """Delete an object and everything that depends on it"""
        res_id = KubeObject(resource)
        namespace_content = self._cluster_content.get(res_id.namespace, {})
        entries = namespace_content.get(res_id.kind, {}).get(res_id.api_version, {})
        if entries.pop(res_id.name, None) is None:
            return
        if not entries:
            del namespace_content[res_id.kind][res_id.api_version]
        if not namespace_content[res_id.kind]:
            del namespace_content[res_id.kind]
        if not namespace_content:
            del self._cluster_content[res_id.namespace]

        self._resource_version += 1
        deleted = copy.deepcopy(resource)
        deleted["metadata"]["resourceVersion"] = str(self._resource_version)
        self._record(KubeEventType.DELETED, deleted)

        # Namespace content goes with the namespace
        dependents = []
        if res_id.kind == "Namespace" and res_id.namespace is None:
            for kinds in self._cluster_content.get(res_id.name, {}).values():
                for named in kinds.values():
                    dependents.extend(named.values())

        # Owner reference garbage collection
        for kinds in self._cluster_content.values():
            for versions in kinds.values():
                for named in versions.values():
                    for candidate in named.values():
                        owner_uids = [
                            ref.get("uid")
                            for ref in (
                                candidate["metadata"].get("ownerReferences") or []
                            )
                        ]
                        if res_id.uid in owner_uids and candidate not in dependents:
                            dependents.append(candidate)

        for dependent in dependents:
            log.debug2("Garbage collecting %s", KubeObject(dependent))
            self._delete_cascade(dependent)


def _same_kind(manifest: dict, kind: str, api_version: Optional[str]) -> bool:
    return manifest.get("kind") == kind and (
        api_version is None or manifest.get("apiVersion") == api_version
    )
