"""
This defines the base class for all Store types. A store is the client-side
view of the cluster control plane: object CRUD, list/watch and optimistic
concurrency through resourceVersion tokens.
"""

# Standard
from typing import Iterator, List, Optional, Tuple
import abc
import threading

# Local
from .kube_event import KubeWatchEvent


class StoreBase(abc.ABC):
    """
    Base class for stores which are responsible for carrying out the actual
    reads and writes against the cluster.

    Error Semantics: all methods may raise a StoreError for transient
    failures. Mutating calls raise ConflictError when the given
    resourceVersion is stale, create raises AlreadyExistsError, and calls
    addressing a single missing object raise NotFoundError.
    """

    @abc.abstractmethod
    def list_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: str,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> Tuple[List[dict], str]:
        """List all objects of a kind

        Args:
            kind:  str
                The kind of the objects to list
            api_version:  str
                The api_version of the resource kind
            namespace:  Optional[str]
                The namespace to list in, or None for all namespaces / cluster
                scoped kinds
            label_selector:  Optional[str]
                A kubernetes label selector to filter on

        Returns:
            items:  List[dict]
                The matching manifests
            resource_version:  str
                The resourceVersion of the list, to start a watch from
        """

    @abc.abstractmethod
    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: str,
        namespace: Optional[str] = None,
        resource_version: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> Iterator[KubeWatchEvent]:
        """Stream the changes of a kind which happened after resource_version.
        The stream ends when the timeout elapses or the stop_event is set.

        Raises:
            ResourceExpiredError if resource_version is too old and the caller
            must relist
        """

    @abc.abstractmethod
    def get_object(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Optional[dict]:
        """Fetch the current state of an object, or None if not present"""

    @abc.abstractmethod
    def create_object(self, resource_definition: dict) -> dict:
        """Create a new object and return the stored manifest

        Raises:
            AlreadyExistsError if an object with the same name exists
        """

    @abc.abstractmethod
    def update_object(self, resource_definition: dict) -> dict:
        """Replace the spec/metadata of an existing object. If the definition
        carries metadata.resourceVersion the update is conditional on it.
        The status section is left untouched.
        """

    @abc.abstractmethod
    def update_status(self, resource_definition: dict) -> dict:
        """Replace only the status sub-resource of an existing object. If the
        definition carries metadata.resourceVersion the update is conditional
        on it.
        """

    @abc.abstractmethod
    def delete_object(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> bool:
        """Delete an object. Dependents are removed by the store's garbage
        collector through their ownerReferences.

        Returns:
            deleted:  bool
                False if the object did not exist
        """

    @abc.abstractmethod
    def delete_collection(
        self,
        kind: str,
        api_version: str,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> int:
        """Delete every object of a kind that matches the selector

        Returns:
            count:  int
                The number of objects deleted (best effort for live clusters)
        """
