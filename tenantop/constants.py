"""
Shared module to hold constant values for the library
"""

## API groups ##################################################################

CORE_API_GROUP = "core.edgenet.io"
REGISTRATION_API_GROUP = "registration.edgenet.io"
API_VERSION = "v1alpha"

TENANT_API_VERSION = f"{CORE_API_GROUP}/{API_VERSION}"
TENANT_KIND = "Tenant"
TENANT_RESOURCE = "tenants"

TENANT_RESOURCE_QUOTA_API_VERSION = f"{CORE_API_GROUP}/{API_VERSION}"
TENANT_RESOURCE_QUOTA_KIND = "TenantResourceQuota"

TENANT_REQUEST_API_VERSION = f"{REGISTRATION_API_GROUP}/{API_VERSION}"
TENANT_REQUEST_KIND = "TenantRequest"

RBAC_API_GROUP = "rbac.authorization.k8s.io"
RBAC_API_VERSION = f"{RBAC_API_GROUP}/v1"
NETWORKING_API_VERSION = "networking.k8s.io/v1"

## Labels ######################################################################

LABEL_TENANT = "edge-net.io/tenant"
LABEL_TENANT_UID = "edge-net.io/tenant-uid"
LABEL_CLUSTER_UID = "edge-net.io/cluster-uid"
LABEL_NAMESPACE_KIND = "edge-net.io/kind"
LABEL_SUBTENANT = "edge-net.io/subtenant"
LABEL_GENERATED = "edge-net.io/generated"

NAMESPACE_KIND_CORE = "core"
NAMESPACE_KIND_SUB = "sub"

## Access ######################################################################

# Shared cluster role bound to the contact of every tenant in its core namespace
TENANT_OWNER_CLUSTER_ROLE = "edgenet:tenant-owner"
TENANT_ADMIN_CLUSTER_ROLE = "edgenet:tenant-admin"
TENANT_COLLABORATOR_CLUSTER_ROLE = "edgenet:tenant-collaborator"

## Events ######################################################################

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

## Misc ########################################################################

# Namespace used for events about cluster-scoped objects
DEFAULT_NAMESPACE = "default"

# Delimiter used for nested dict keys
NESTED_DICT_DELIM = "."

# Delimiter between namespace and name in work queue keys
KEY_DELIM = "/"
