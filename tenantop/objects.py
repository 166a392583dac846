"""
Helper object to represent a kubernetes object handled by the operators along
with the work queue key and owner reference helpers built on top of it
"""
# Standard
from typing import Optional, Protocol, Tuple, Union
import copy

# Local
from . import constants
from .exceptions import MalformedKeyError


class Ownable(Protocol):
    """Anything that can be referenced as the owner of another object"""

    api_version: str
    kind: str
    name: str
    uid: Optional[str]


class KubeObject:  # pylint: disable=too-many-instance-attributes
    """Basic struct to represent a kubernetes object"""

    def __init__(self, definition: dict):
        self.kind = definition.get("kind")
        self.metadata = definition.get("metadata") or {}
        self.name = self.metadata.get("name")
        self.namespace = self.metadata.get("namespace")
        self.uid = self.metadata.get("uid")
        self.resource_version = self.metadata.get("resourceVersion")
        self.api_version = definition.get("apiVersion")
        self.definition = definition

        assert self.kind is not None, "No kind found"
        assert self.api_version is not None, "No apiVersion found"
        assert self.name is not None, "No name found"

    @property
    def key(self) -> str:
        """The work queue key for this object"""
        return make_key(self.name, self.namespace)

    @property
    def labels(self) -> dict:
        return self.metadata.get("labels") or {}

    @property
    def spec(self) -> dict:
        return self.definition.get("spec") or {}

    @property
    def status(self) -> dict:
        return self.definition.get("status") or {}

    def get(self, *args, **kwargs):
        """Pass get calls to the objects definition"""
        return self.definition.get(*args, **kwargs)

    def deepcopy(self) -> "KubeObject":
        return KubeObject(copy.deepcopy(self.definition))

    def __str__(self):
        return f"{self.api_version}/{self.kind}/{self.key}"

    def __repr__(self):
        return str(self)

    def __hash__(self):
        """Hash on the cluster identity rather than the content"""
        return hash(self.uid or str(self))

    def __eq__(self, other):
        return hash(self) == hash(other)


## Keys ########################################################################


def make_key(name: str, namespace: Optional[str] = None) -> str:
    """Make the work queue key for a name and optional namespace"""
    if namespace:
        return f"{namespace}{constants.KEY_DELIM}{name}"
    return name


def key_for(obj: Union[KubeObject, dict]) -> str:
    """Compute the work queue key of a manifest or KubeObject"""
    if isinstance(obj, KubeObject):
        return obj.key
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        raise MalformedKeyError(f"Object has no name: {obj}")
    return make_key(name, metadata.get("namespace"))


def split_key(key: str) -> Tuple[Optional[str], str]:
    """Split a work queue key into (namespace, name)

    Raises:
        MalformedKeyError if the key is not a non-empty "name" or
        "namespace/name" string
    """
    if not isinstance(key, str) or not key:
        raise MalformedKeyError(f"Invalid resource key: {key!r}")
    parts = key.split(constants.KEY_DELIM)
    if len(parts) == 1:
        return None, parts[0]
    if len(parts) == 2 and all(parts):
        return parts[0], parts[1]
    raise MalformedKeyError(f"Invalid resource key: {key!r}")


## Owner References ############################################################


def make_owner_reference(owner: Ownable, controller: bool = True) -> dict:
    """Make the ownerReferences entry pointing at the given owner. The store's
    garbage collector removes the child when the owner is deleted.
    """
    return {
        "apiVersion": owner.api_version,
        "kind": owner.kind,
        "name": owner.name,
        "uid": owner.uid,
        "controller": controller,
        # The parent will not be deleted until this object completes its
        # deletion
        "blockOwnerDeletion": True,
    }


def set_owner_reference(child: dict, owner: Ownable, controller: bool = True):
    """Merge a reference to the owner into the child manifest in place. An
    existing reference to the same owner uid is replaced.
    """
    metadata = child.setdefault("metadata", {})
    refs = [
        ref
        for ref in (metadata.get("ownerReferences") or [])
        if ref.get("uid") != owner.uid
    ]
    refs.append(make_owner_reference(owner, controller=controller))
    metadata["ownerReferences"] = refs
    return child
