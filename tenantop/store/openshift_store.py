"""
This Store is responsible for delegating cluster operations to the openshift
library. It is the one that will be used when the operator is running in the
cluster or outside the cluster making live changes.
"""
# Standard
from contextlib import contextmanager
from typing import Iterator, Optional
import json
import threading

# Third Party
from kubernetes import client
from kubernetes.watch import Watch
from openshift.dynamic import DynamicClient
from openshift.dynamic.exceptions import (
    ConflictError as ApiConflictError,
    DynamicApiError,
    NotFoundError as ApiNotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
)
from openshift.dynamic.resource import Resource
import kubernetes
import urllib3

# First Party
import alog

# Local
from ..exceptions import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ResourceExpiredError,
    StoreError,
    assert_cluster,
)
from ..objects import KubeObject
from .base import StoreBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("OSFTS")

# See this document for value reasonings
# https://github.com/kubernetes-client/python/blob/master/examples/watch/timeout-settings.md
CLIENT_WATCH_TIMEOUT = 30


class OpenshiftStore(StoreBase):
    """This Store uses the openshift DynamicClient to interact with the
    cluster
    """

    def __init__(self, dynamic_client: Optional[DynamicClient] = None):
        """
        Args:
            dynamic_client:  Optional[DynamicClient]
                A preconfigured client. If not given, one is created lazily
                from the in-cluster or kubeconfig credentials.
        """
        log.debug("Initializing openshift store")
        self._client = dynamic_client

    @property
    def client(self):
        """Lazy property access to the client"""
        if self._client is None:
            self._client = self._setup_client()
        return self._client

    ## Interface ###############################################################

    def list_objects(
        self,
        kind,
        api_version,
        namespace=None,
        label_selector=None,
    ):  # pylint: disable=too-many-arguments
        resource_handle = self._get_resource_handle(kind, api_version)
        with _translate_errors(kind, namespace=namespace):
            result = resource_handle.get(
                namespace=namespace, label_selector=label_selector
            ).to_dict()
        items = result.get("items") or []
        # Lists do not carry kind/apiVersion on the items
        for item in items:
            item.setdefault("kind", kind)
            item.setdefault("apiVersion", api_version)
        resource_version = (result.get("metadata") or {}).get("resourceVersion")
        log.debug2(
            "Listed %d %s/%s at version %s",
            len(items),
            api_version,
            kind,
            resource_version,
        )
        return items, resource_version

    def get_object(self, kind, name, namespace=None, api_version=None):
        resource_handle = self._get_resource_handle(kind, api_version)
        try:
            with _translate_errors(kind, name, namespace):
                return resource_handle.get(name=name, namespace=namespace).to_dict()
        except NotFoundError:
            log.debug(
                "No object named [%s/%s] found in namespace [%s]", kind, name, namespace
            )
            return None

    def create_object(self, resource_definition):
        res_id = KubeObject(resource_definition)
        resource_handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        log.debug2("Creating %s", res_id)
        with _translate_errors(res_id.kind, res_id.name, res_id.namespace):
            return resource_handle.create(
                body=resource_definition, namespace=res_id.namespace
            ).to_dict()

    def update_object(self, resource_definition):
        res_id = KubeObject(resource_definition)
        resource_handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        log.debug2("Replacing %s", res_id)
        with _translate_errors(res_id.kind, res_id.name, res_id.namespace):
            return resource_handle.replace(
                body=resource_definition, namespace=res_id.namespace
            ).to_dict()

    def update_status(self, resource_definition):
        res_id = KubeObject(resource_definition)
        resource_handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        log.debug2("Replacing status of %s", res_id)
        with _translate_errors(res_id.kind, res_id.name, res_id.namespace):
            return resource_handle.status.replace(
                body=resource_definition, namespace=res_id.namespace
            ).to_dict()

    def delete_object(self, kind, name, namespace=None, api_version=None):
        resource_handle = self._get_resource_handle(kind, api_version)
        try:
            with _translate_errors(kind, name, namespace):
                resource_handle.delete(
                    name=name, namespace=namespace, propagation_policy="Background"
                )
        except NotFoundError:
            log.debug2("[%s/%s] already deleted", kind, name)
            return False
        return True

    def delete_collection(
        self,
        kind,
        api_version,
        namespace=None,
        label_selector=None,
    ):  # pylint: disable=too-many-arguments
        resource_handle = self._get_resource_handle(kind, api_version)
        if label_selector:
            with _translate_errors(kind, namespace=namespace):
                result = resource_handle.delete(
                    namespace=namespace, label_selector=label_selector
                ).to_dict()
            return len(result.get("items") or [])

        # The client refuses a collection delete without a selector, so every
        # object in scope is deleted by name
        with _translate_errors(kind, namespace=namespace):
            result = resource_handle.get(namespace=namespace).to_dict()
        deleted = 0
        for item in result.get("items") or []:
            name = item["metadata"]["name"]
            try:
                with _translate_errors(kind, name, namespace):
                    resource_handle.delete(name=name, namespace=namespace)
                deleted += 1
            except NotFoundError:
                log.debug2("[%s/%s] already deleted", kind, name)
        return deleted

    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind,
        api_version,
        namespace=None,
        resource_version=None,
        timeout_seconds=None,
        stop_event: Optional[threading.Event] = None,
    ) -> Iterator[KubeWatchEvent]:
        resource_handle = self._get_resource_handle(kind, api_version)
        watch_manager = Watch()
        try:
            for event_obj in watch_manager.stream(
                resource_handle.get,
                resource_version=resource_version,
                namespace=namespace,
                serialize=False,
                timeout_seconds=timeout_seconds,
                _request_timeout=CLIENT_WATCH_TIMEOUT,
            ):
                if stop_event is not None and stop_event.is_set():
                    watch_manager.stop()
                    return
                event_type = KubeEventType(event_obj["type"])
                yield KubeWatchEvent(event_type, KubeObject(event_obj["object"]))
        except client.exceptions.ApiException as exception:
            if exception.status == 410:
                raise ResourceExpiredError(
                    f"Resource version {resource_version} expired for {kind}"
                ) from exception
            log.info("Unknown ApiException received, re-raising")
            raise StoreError(str(exception)) from exception
        except urllib3.exceptions.ReadTimeoutError:
            log.debug4("Watch Socket closed for %s/%s", api_version, kind)
        except urllib3.exceptions.ProtocolError:
            log.debug2("Invalid Chunk from server for %s/%s", api_version, kind)

    ## Implementation Helpers ##################################################

    @staticmethod
    def _setup_client():
        """Create a DynamicClient that will work based on where the operator is
        running
        """
        # Try in-cluster config
        try:
            log.debug2("Running with in-cluster config")
            kube_config = kubernetes.client.Configuration()
            kubernetes.config.load_incluster_config(client_configuration=kube_config)
            return DynamicClient(kubernetes.client.ApiClient(kube_config))

        # Fall back to out-of-cluster config
        except kubernetes.config.ConfigException:
            log.debug2("Running with out-of-cluster config")
            return DynamicClient(kubernetes.config.new_client_from_config())

    def _get_resource_handle(self, kind: str, api_version: str) -> Resource:
        """Get the openshift resource handle for a specified kind and api_version"""
        resources = None
        try:
            resources = self.client.resources.get(kind=kind, api_version=api_version)
        except (ResourceNotFoundError, ResourceNotUniqueError):
            log.debug("No unique resource of kind [%s/%s]", api_version, kind)
        assert_cluster(
            resources is not None,
            f"Failed to fetch resource handle for {api_version}/{kind}",
        )
        return resources


@contextmanager
def _translate_errors(kind: str, name: Optional[str] = None, namespace=None):
    """Map the openshift client errors onto the store error hierarchy"""
    try:
        yield
    except ApiNotFoundError as err:
        raise NotFoundError(f"{kind}/{name} not found in {namespace}") from err
    except ApiConflictError as err:
        if _error_reason(err) == "AlreadyExists":
            raise AlreadyExistsError(f"{kind}/{name} already exists") from err
        raise ConflictError(f"Conflict writing {kind}/{name}: {err.summary()}") from err
    except DynamicApiError as err:
        raise StoreError(f"Failed operating on {kind}/{name}: {err.summary()}") from err


def _error_reason(err: DynamicApiError) -> Optional[str]:
    try:
        return json.loads(err.body).get("reason")
    except (TypeError, ValueError, AttributeError):
        return None
