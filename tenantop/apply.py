"""
Idempotent creation of the child objects the operators manage. An object that
already exists is accepted as long as it matches; drifted fields are written
back, and fields the API server does not allow to change force a replace.
"""

# Standard
from typing import Iterable, Optional
import copy

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from . import config
from .exceptions import AlreadyExistsError, ConflictError
from .objects import KubeObject
from .store import StoreBase
from .utils import Clock

log = alog.use_channel("APPLY")

# Top level fields which cannot be updated in place
IMMUTABLE_FIELDS = ("roleRef",)


def ensure_object(
    store: StoreBase,
    resource_definition: dict,
    compare_fields: Iterable[str] = (),
    clock: Optional[Clock] = None,
) -> dict:
    """Create the object, or bring an existing one in line with the desired
    manifest

    Args:
        store:  StoreBase
            The store to write through
        resource_definition:  dict
            The desired manifest
        compare_fields:  Iterable[str]
            Top level fields (e.g. spec, subjects, rules) that must match the
            desired manifest. Desired labels are always merged in.

    Returns:
        current:  dict
            The manifest as stored in the cluster

    Raises:
        StoreError on failure. Conflicts are retried store_retries times.
    """
    clock = clock or Clock()
    res_id = KubeObject(resource_definition)
    compare_fields = list(compare_fields)
    for attempt in range(config.store_retries + 1):
        try:
            created = store.create_object(copy.deepcopy(resource_definition))
            log.debug("Created %s", res_id)
            return created
        except AlreadyExistsError:
            log.debug3("%s already exists", res_id)

        current = store.get_object(
            res_id.kind, res_id.name, res_id.namespace, res_id.api_version
        )
        if current is None:
            log.debug2("%s vanished after AlreadyExists. Retrying create.", res_id)
            continue

        updated = _reconcile_fields(current, resource_definition, compare_fields)
        if updated is None:
            return current

        try:
            if any(
                field in compare_fields
                and _differs(current, resource_definition, field)
                for field in IMMUTABLE_FIELDS
            ):
                log.debug("Replacing %s with immutable field drift", res_id)
                store.delete_object(
                    res_id.kind, res_id.name, res_id.namespace, res_id.api_version
                )
                continue
            log.debug("Updating drifted %s", res_id)
            return store.update_object(updated)
        except ConflictError:
            if attempt == config.store_retries:
                raise
            log.debug2("Conflict updating %s on attempt %d", res_id, attempt)
            clock.sleep(float(config.retry_backoff_base_seconds) * 2**attempt)

    raise ConflictError(f"Unable to converge {res_id}")


def _differs(current: dict, desired: dict, field: str) -> bool:
    return bool(
        DeepDiff(current.get(field), desired.get(field), ignore_order=True)
    )


def _reconcile_fields(
    current: dict, desired: dict, compare_fields: Iterable[str]
) -> Optional[dict]:
    """Build the updated manifest, or None if nothing drifted"""
    updated = copy.deepcopy(current)
    changed = False

    desired_labels = (desired.get("metadata") or {}).get("labels") or {}
    current_labels = updated.setdefault("metadata", {}).get("labels") or {}
    if any(current_labels.get(key) != value for key, value in desired_labels.items()):
        updated["metadata"]["labels"] = {**current_labels, **desired_labels}
        changed = True

    for field in compare_fields:
        if _differs(current, desired, field):
            updated[field] = copy.deepcopy(desired.get(field))
            changed = True

    return updated if changed else None
