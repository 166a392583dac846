"""
Recorder for the core/v1 Events the controllers emit against the objects they
reconcile
"""
# Standard
from typing import Optional
import uuid

# First Party
import alog

# Local
from .. import constants
from ..exceptions import StoreError
from ..objects import KubeObject
from ..utils import Clock, format_timestamp
from .base import StoreBase

log = alog.use_channel("EVENT")


class EventRecorder:
    """An EventRecorder writes Events through a store. Recording is best
    effort: a failed write is logged and never fails the reconciliation.
    """

    def __init__(
        self,
        store: StoreBase,
        component: str,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.component = component
        self.clock = clock or Clock()

    def event(self, obj: KubeObject, event_type: str, reason: str, message: str):
        """Record an event about the given object

        Args:
            obj:  KubeObject
                The object the event is about
            event_type:  str
                Normal or Warning
            reason:  str
                Short CamelCase-ish reason for the event
            message:  str
                Human readable description
        """
        timestamp = format_timestamp(self.clock.now())
        namespace = obj.namespace or constants.DEFAULT_NAMESPACE
        manifest = {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "name": f"{obj.name}.{uuid.uuid4().hex[:16]}",
                "namespace": namespace,
            },
            "involvedObject": {
                "apiVersion": obj.api_version,
                "kind": obj.kind,
                "name": obj.name,
                "namespace": obj.namespace,
                "uid": obj.uid,
                "resourceVersion": obj.resource_version,
            },
            "type": event_type,
            "reason": reason,
            "message": message,
            "source": {"component": self.component},
            "firstTimestamp": timestamp,
            "lastTimestamp": timestamp,
            "count": 1,
        }
        log.debug2("Recording %s event [%s] for %s", event_type, reason, obj)
        try:
            self.store.create_object(manifest)
        except StoreError as err:
            log.warning("Failed to record event [%s] for %s: %s", reason, obj, err)

    def normal(self, obj: KubeObject, reason: str, message: str):
        self.event(obj, constants.EVENT_TYPE_NORMAL, reason, message)

    def warning(self, obj: KubeObject, reason: str, message: str):
        self.event(obj, constants.EVENT_TYPE_WARNING, reason, message)
