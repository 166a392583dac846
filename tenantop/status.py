"""
This module holds the common functionality used to represent the status of the
resources the operators reconcile and to write it back to the cluster. A
reconciliation mutates a working copy of the object's status and the status
sub-resource is written once at the end, only if it changed.
"""

# Standard
from contextlib import contextmanager
from typing import Optional
import copy

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from .exceptions import ConflictError, NotFoundError, StoreError
from .objects import KubeObject
from .store import StoreBase

log = alog.use_channel("STATUS")

## Status States ###############################################################

STATE_PENDING = "Pending"
STATE_APPROVED = "Approved"
STATE_DENIED = "Denied"
STATE_FAILURE = "Failure"
STATE_ESTABLISHED = "Established"
STATE_APPLIED = "Applied"

STATE_KEY = "state"
MESSAGE_KEY = "message"
EXPIRY_KEY = "expiry"
AGGREGATE_KEY = "aggregate"

## Interface ###################################################################


def get_status(obj: KubeObject) -> dict:
    """Get the mutable status dict of the object, creating it if missing"""
    status = obj.definition.get("status")
    if not isinstance(status, dict):
        status = {}
        obj.definition["status"] = status
    return status


def set_state(obj: KubeObject, state: str, message: Optional[str] = None):
    """Set the state and message of the object's working status"""
    status = get_status(obj)
    status[STATE_KEY] = state
    if message is not None:
        status[MESSAGE_KEY] = message


def status_changed(previous: Optional[dict], current: Optional[dict]) -> bool:
    """Compare two status blobs semantically"""
    return bool(DeepDiff(previous or {}, current or {}, ignore_order=True))


def write_status(
    store: StoreBase,
    obj: KubeObject,
    previous_status: Optional[dict],
) -> bool:
    """Write the object's status sub-resource if it differs from the previous
    snapshot. The write is conditional on the resourceVersion the object was
    read at, so a status computed from a stale read is never written over a
    newer one.

    Args:
        store:  StoreBase
            The store to write through
        obj:  KubeObject
            The object holding the desired status
        previous_status:  Optional[dict]
            The status the object had before the reconciliation

    Returns:
        written:  bool
            Whether a write happened

    Raises:
        ConflictError if the object changed since it was read. The caller
            requeues and recomputes the status from the newer object.
    """
    desired_status = obj.definition.get("status")
    if not status_changed(previous_status, desired_status):
        log.debug2("Status of %s has not changed. No update", obj)
        return False

    try:
        store.update_status(copy.deepcopy(obj.definition))
    except NotFoundError:
        log.debug("%s was deleted before its status could be written", obj)
        return False
    except ConflictError:
        log.debug("%s changed since it was read. Not writing status", obj)
        raise
    log.debug("Updated status of %s: %s", obj, desired_status, extra={"resource": obj})
    return True


@contextmanager
def status_writeback(store: StoreBase, obj: KubeObject):
    """Snapshot the status of the object, hand the object to the body and
    write the status back once the body finishes. If the body raises, the
    status is still written (failures logged) and the error propagates.
    """
    previous_status = copy.deepcopy(obj.definition.get("status"))
    log.debug2("Reconciling %s", obj, extra={"resource": obj})
    try:
        yield obj
    except Exception:
        try:
            write_status(store, obj, previous_status)
        except StoreError as err:
            log.warning("Failed to write status of %s: %s", obj, err)
        raise
    write_status(store, obj, previous_status)
