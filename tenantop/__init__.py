"""
Package exports
"""

# Local
from . import config, constants, status
from .cache import Informer
from .controller import Controller
from .controllers import (
    TenantController,
    TenantRequestController,
    TenantResourceQuotaController,
)
from .exceptions import assert_cluster, assert_config, assert_precondition
from .manager import OperatorManager
from .store import DryRunStore, EventRecorder, OpenshiftStore, StoreBase
from .workqueue import RateLimitingQueue, WorkQueue
