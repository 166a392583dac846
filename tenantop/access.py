"""
Access control templates: the cluster roles shared by all tenants and the
object specific roles and bindings created for each tenant contact
"""

# Standard
from typing import Dict, List, Optional

# First Party
import alog

# Local
from . import constants
from .apply import ensure_object
from .objects import Ownable, set_owner_reference
from .store import StoreBase

log = alog.use_channel("ACCESS")

## Shared Cluster Roles ########################################################

_NAMESPACE_WORKLOAD_RULES = [
    {
        "apiGroups": ["", "apps", "batch", "autoscaling"],
        "resources": [
            "pods",
            "pods/log",
            "pods/exec",
            "services",
            "configmaps",
            "secrets",
            "persistentvolumeclaims",
            "deployments",
            "statefulsets",
            "daemonsets",
            "replicasets",
            "jobs",
            "cronjobs",
            "horizontalpodautoscalers",
        ],
        "verbs": ["*"],
    },
    {
        "apiGroups": ["networking.k8s.io"],
        "resources": ["networkpolicies", "ingresses"],
        "verbs": ["*"],
    },
]

_TENANT_VIEW_RULES = [
    {
        "apiGroups": [constants.CORE_API_GROUP],
        "resources": ["tenantresourcequotas", "subnamespaces"],
        "verbs": ["get", "list", "watch"],
    },
]

SHARED_CLUSTER_ROLES: Dict[str, List[dict]] = {
    constants.TENANT_OWNER_CLUSTER_ROLE: _NAMESPACE_WORKLOAD_RULES
    + _TENANT_VIEW_RULES
    + [
        {
            "apiGroups": [constants.RBAC_API_GROUP],
            "resources": ["rolebindings"],
            "verbs": ["*"],
        },
        {
            "apiGroups": [constants.CORE_API_GROUP],
            "resources": ["subnamespaces"],
            "verbs": ["*"],
        },
    ],
    constants.TENANT_ADMIN_CLUSTER_ROLE: _NAMESPACE_WORKLOAD_RULES
    + _TENANT_VIEW_RULES
    + [
        {
            "apiGroups": [constants.RBAC_API_GROUP],
            "resources": ["rolebindings"],
            "verbs": ["*"],
        },
    ],
    constants.TENANT_COLLABORATOR_CLUSTER_ROLE: _NAMESPACE_WORKLOAD_RULES
    + _TENANT_VIEW_RULES,
}


def generated_labels(extra: Optional[dict] = None) -> dict:
    """Labels marking an object as generated by the operators"""
    return {constants.LABEL_GENERATED: "true", **(extra or {})}


def create_cluster_roles(store: StoreBase) -> List[dict]:
    """Create or refresh the cluster roles shared by every tenant"""
    created = []
    for name, rules in SHARED_CLUSTER_ROLES.items():
        log.debug2("Ensuring shared cluster role %s", name)
        created.append(
            ensure_object(
                store,
                {
                    "apiVersion": constants.RBAC_API_VERSION,
                    "kind": "ClusterRole",
                    "metadata": {"name": name, "labels": generated_labels()},
                    "rules": rules,
                },
                compare_fields=["rules"],
            )
        )
    return created


## Object Specific Access ######################################################


def object_specific_cluster_role_name(
    tenant: str, resource: str, resource_name: str, role: str
) -> str:
    return f"edgenet:{tenant}:{resource}:{resource_name}-{role}"


def create_object_specific_cluster_role(  # pylint: disable=too-many-arguments
    store: StoreBase,
    tenant: str,
    api_group: str,
    resource: str,
    resource_name: str,
    role: str,
    verbs: List[str],
    owner: Optional[Ownable] = None,
    labels: Optional[dict] = None,
) -> dict:
    """Create a cluster role granting the verbs on one named object

    Returns:
        cluster_role:  dict
            The stored cluster role
    """
    manifest = {
        "apiVersion": constants.RBAC_API_VERSION,
        "kind": "ClusterRole",
        "metadata": {
            "name": object_specific_cluster_role_name(
                tenant, resource, resource_name, role
            ),
            "labels": generated_labels(labels),
        },
        "rules": [
            {
                "apiGroups": [api_group],
                "resources": [resource],
                "resourceNames": [resource_name],
                "verbs": list(verbs),
            }
        ],
    }
    if owner is not None:
        set_owner_reference(manifest, owner)
    return ensure_object(store, manifest, compare_fields=["rules"])


def user_subject(email: str) -> dict:
    return {"kind": "User", "name": email, "apiGroup": constants.RBAC_API_GROUP}


def create_object_specific_cluster_role_binding(
    store: StoreBase,
    cluster_role_name: str,
    handle: str,
    email: str,
    labels: Optional[dict] = None,
) -> dict:
    """Bind a user to an object specific cluster role"""
    manifest = {
        "apiVersion": constants.RBAC_API_VERSION,
        "kind": "ClusterRoleBinding",
        "metadata": {
            "name": f"{cluster_role_name}-{handle}",
            "labels": generated_labels(labels),
        },
        "subjects": [user_subject(email)],
        "roleRef": {
            "apiGroup": constants.RBAC_API_GROUP,
            "kind": "ClusterRole",
            "name": cluster_role_name,
        },
    }
    return ensure_object(store, manifest, compare_fields=["subjects", "roleRef"])


def create_role_binding(  # pylint: disable=too-many-arguments
    store: StoreBase,
    namespace: str,
    name: str,
    cluster_role_name: str,
    email: str,
    labels: Optional[dict] = None,
) -> dict:
    """Bind a user to a cluster role within one namespace"""
    manifest = {
        "apiVersion": constants.RBAC_API_VERSION,
        "kind": "RoleBinding",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": generated_labels(labels),
        },
        "subjects": [user_subject(email)],
        "roleRef": {
            "apiGroup": constants.RBAC_API_GROUP,
            "kind": "ClusterRole",
            "name": cluster_role_name,
        },
    }
    return ensure_object(store, manifest, compare_fields=["subjects", "roleRef"])
