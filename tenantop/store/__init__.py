"""
The Store is the abstraction in charge of interacting with the kubernetes
cluster to create, look up, watch and delete resources.
"""

# Local
from .base import StoreBase
from .dry_run_store import DryRunStore
from .events import EventRecorder
from .kube_event import KubeEventType, KubeWatchEvent
from .openshift_store import OpenshiftStore
