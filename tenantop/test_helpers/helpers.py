"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Type
from unittest import mock
import copy
import inspect
import os
import threading
import time

# First Party
import aconfig
import alog

# Local
from tenantop import constants
from tenantop.cache import Informer
from tenantop.config import library_config as config_detail_dict
from tenantop.controller import Controller
from tenantop.exceptions import StoreError
from tenantop.objects import KubeObject
from tenantop.store import DryRunStore
from tenantop.utils import Clock, merge_configs

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_TENANT_NAME = "lab"
TEST_CONTACT = {
    "handle": "johndoe",
    "firstName": "John",
    "lastName": "Doe",
    "email": "john.doe@edge-net.org",
    "phone": "+33NUMBER",
}
TEST_ALLOCATION = {"cpu": "8000m", "memory": "8192Mi"}
TEST_CLUSTER_UID = "00000000-0000-0000-0000-c1u57e7uid00"
TEST_START_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


## Config ######################################################################


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion. Dict values are merged into nested sections.
    """
    # Override the configs and hang onto the old values
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
            if isinstance(val, dict) and isinstance(old_vals[key], dict):
                val = aconfig.Config(
                    merge_configs(copy.deepcopy(dict(old_vals[key])), val),
                    override_env_vars=False,
                )
        config_detail_dict[key] = val

    # Yield to the context
    try:
        yield
    finally:
        # Revert to the old values
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


## Time ########################################################################


class FakeClock(Clock):
    """Clock whose time only moves when told to. sleep() advances the time
    instead of blocking.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or TEST_START_TIME
        self._lock = threading.Lock()
        self.sleeps = []

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.advance(seconds=seconds)

    def advance(self, **kwargs):
        """Move the time forward by a timedelta built from kwargs"""
        with self._lock:
            self._now = self._now + timedelta(**kwargs)


def wait_until(condition: Callable[[], bool], timeout: float = 5, interval=0.01):
    """Poll a condition with real time for threaded tests"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()


## Mock Store ##################################################################


def get_failable_method(fail_flag, method, failure_return=None):
    log.debug4(
        "Setting up failable mock of [%s] with fail flag: %s", str(method), fail_flag
    )

    def failable_method(*args, **kwargs):
        if isinstance(fail_flag, Exception) or (
            inspect.isclass(fail_flag) and issubclass(fail_flag, Exception)
        ):
            log.debug4("Raising in failable mock")
            raise fail_flag
        if callable(fail_flag):
            log.debug4("Calling callable fail flag")
            res = fail_flag(*args, **kwargs)
            if res is not None:
                return res
        elif fail_flag:
            log.debug4("Returning %s", failure_return)
            return failure_return
        return method(*args, **kwargs)

    return failable_method


class FailOnce:
    """Helper callable that will fail once on the N'th call"""

    def __init__(self, fail_val, fail_number=1):
        self.call_count = 0
        self.fail_number = fail_number
        self.fail_val = fail_val

    def __call__(self, *_, **__):
        self.call_count += 1
        if self.call_count == self.fail_number:
            log.debug("Failing on call %d with %s", self.call_count, self.fail_val)
            if isinstance(self.fail_val, type) and issubclass(self.fail_val, Exception):
                raise self.fail_val("Raising!")
            return self.fail_val
        log.debug("Not failing on call %d", self.call_count)
        return None


class FailForKinds:
    """Helper callable that raises only for operations on the given kinds"""

    def __init__(self, *kinds, error: Type[Exception] = StoreError):
        self.kinds = set(kinds)
        self.error = error

    def __call__(self, *args, **kwargs):
        first = (
            args[0]
            if args
            else kwargs.get("kind", kwargs.get("resource_definition"))
        )
        kind = first.get("kind") if isinstance(first, dict) else first
        if kind in self.kinds:
            raise self.error(f"Failing {kind} on purpose")


class MockStore(DryRunStore):
    """The MockStore wraps a standard DryRunStore and adds configuration
    options to simulate failures in each of its operations. Every operation
    is a mock.Mock so tests can inspect the calls.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        resources=None,
        get_fail=False,
        list_fail=False,
        create_fail=False,
        update_fail=False,
        update_status_fail=False,
        delete_fail=False,
        delete_collection_fail=False,
        watch_fail=False,
        with_system_namespace=True,
    ):
        resources = list(resources or [])
        if with_system_namespace:
            resources.insert(0, make_system_namespace())
        super().__init__(resources=resources)

        self.get_object = mock.Mock(
            side_effect=get_failable_method(get_fail, super().get_object)
        )
        self.list_objects = mock.Mock(
            side_effect=get_failable_method(list_fail, super().list_objects)
        )
        self.create_object = mock.Mock(
            side_effect=get_failable_method(create_fail, super().create_object)
        )
        self.update_object = mock.Mock(
            side_effect=get_failable_method(update_fail, super().update_object)
        )
        self.update_status = mock.Mock(
            side_effect=get_failable_method(update_status_fail, super().update_status)
        )
        self.delete_object = mock.Mock(
            side_effect=get_failable_method(delete_fail, super().delete_object)
        )
        self.delete_collection = mock.Mock(
            side_effect=get_failable_method(
                delete_collection_fail, super().delete_collection
            )
        )
        self.watch_objects = mock.Mock(
            side_effect=get_failable_method(watch_fail, super().watch_objects, iter([]))
        )

    def get_obj(self, kind, name, namespace=None, api_version=None):
        return DryRunStore.get_object(self, kind, name, namespace, api_version)

    def has_obj(self, *args, **kwargs):
        return self.get_obj(*args, **kwargs) is not None

    def list_kind(self, kind, api_version=None, namespace=None, label_selector=None):
        return DryRunStore.list_objects(
            self, kind, api_version, namespace=namespace, label_selector=label_selector
        )[0]

    def events(self, reason: Optional[str] = None):
        """All events recorded in the store, optionally with a given reason"""
        return [
            event
            for event in self.list_kind("Event", "v1")
            if reason is None or event.get("reason") == reason
        ]

    def writes(self) -> int:
        """Number of mutating calls made through the store"""
        return sum(
            method.call_count
            for method in [
                self.create_object,
                self.update_object,
                self.update_status,
                self.delete_object,
                self.delete_collection,
            ]
        )

    def reset_call_counts(self):
        for method in [
            self.get_object,
            self.list_objects,
            self.create_object,
            self.update_object,
            self.update_status,
            self.delete_object,
            self.delete_collection,
            self.watch_objects,
        ]:
            method.reset_mock()


## Manifests ###################################################################


def make_system_namespace(uid: str = TEST_CLUSTER_UID) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": config_detail_dict.cluster.system_namespace, "uid": uid},
    }


def make_tenant_request(
    name: str = TEST_TENANT_NAME,
    approved: bool = False,
    allocation: Optional[dict] = None,
    status: Optional[dict] = None,
    **spec_overrides,
) -> dict:
    manifest = {
        "apiVersion": constants.TENANT_REQUEST_API_VERSION,
        "kind": constants.TENANT_REQUEST_KIND,
        "metadata": {"name": name},
        "spec": {
            "fullName": "Sorbonne University",
            "shortName": "SU",
            "url": "https://www.sorbonne-universite.fr",
            "address": {
                "street": "4 place Jussieu",
                "zip": "75005",
                "city": "Paris",
                "region": "Ile-de-France",
                "country": "France",
            },
            "contact": copy.deepcopy(TEST_CONTACT),
            "resourceAllocation": copy.deepcopy(
                TEST_ALLOCATION if allocation is None else allocation
            ),
            "approved": approved,
            **spec_overrides,
        },
    }
    if status is not None:
        manifest["status"] = status
    return manifest


def make_tenant(
    name: str = TEST_TENANT_NAME,
    enabled: bool = True,
    allocation: Optional[dict] = None,
    contact: Optional[dict] = None,
) -> dict:
    return {
        "apiVersion": constants.TENANT_API_VERSION,
        "kind": constants.TENANT_KIND,
        "metadata": {"name": name},
        "spec": {
            "fullName": "Sorbonne University",
            "shortName": "SU",
            "url": "https://www.sorbonne-universite.fr",
            "contact": copy.deepcopy(TEST_CONTACT if contact is None else contact),
            "enabled": enabled,
            "resourceAllocation": copy.deepcopy(
                TEST_ALLOCATION if allocation is None else allocation
            ),
        },
    }


def make_tenant_resource_quota(name: str = TEST_TENANT_NAME, claims=None) -> dict:
    if claims is None:
        claims = {"initial": {"resourceList": copy.deepcopy(TEST_ALLOCATION)}}
    return {
        "apiVersion": constants.TENANT_RESOURCE_QUOTA_API_VERSION,
        "kind": constants.TENANT_RESOURCE_QUOTA_KIND,
        "metadata": {"name": name},
        "spec": {"claim": claims},
    }


## Controllers #################################################################


def make_controller(
    controller_type: Type[Controller],
    store: DryRunStore,
    clock: Optional[Clock] = None,
) -> Controller:
    """Build a controller over a synced, non-running informer"""
    informer = Informer(
        store, controller_type.kind, controller_type.api_version, resync_period=0
    )
    controller = controller_type(store, informer, clock=clock or FakeClock())
    informer.list_and_replace()
    return controller


def reconcile(controller: Controller, name: str) -> Optional[KubeObject]:
    """Refresh the controller's cache from the store, run the sync handler for
    one key and return the stored object afterwards
    """
    controller.informer.list_and_replace()
    controller.sync_handler(name)
    current = DryRunStore.get_object(
        controller.store, controller.kind, name, api_version=controller.api_version
    )
    return KubeObject(current) if current is not None else None
