"""
The TenantController provisions the namespace, access bindings and network
policy of enabled tenants and tears them down when a tenant is disabled
"""

# Standard
from typing import Optional

# First Party
import alog

# Local
from .. import access, config, constants
from ..apply import ensure_object
from ..controller import Controller
from ..exceptions import PreconditionError, StoreError
from ..labels import tenant_identity, tenant_identity_selector
from ..objects import KubeObject, set_owner_reference
from ..status import (
    STATE_ESTABLISHED,
    STATE_FAILURE,
    STATE_KEY,
    STATE_PENDING,
    get_status,
    set_state,
    status_writeback,
)

log = alog.use_channel("TENANT")

## Reasons and Messages ########################################################

REASON_ESTABLISHED = "Established"
MESSAGE_ESTABLISHED = "Tenant established successfully"
REASON_CREATION_FAILED = "Not Created"
MESSAGE_OWNER_ROLE_FAILED = "Owner cluster role creation failed"
MESSAGE_NAMESPACE_FAILED = "Core namespace creation failed"
MESSAGE_CLUSTER_ROLE_BINDING_FAILED = "Role binding creation for tenant failed"
REASON_BINDING_FAILED = "Binding Failed"
MESSAGE_BINDING_FAILED = "Role binding failed"
REASON_NETWORK_POLICY_FAILED = "Not Applied"
MESSAGE_NETWORK_POLICY_FAILED = "Applying network policy failed"
REASON_REMOVAL_FAILED = "Not Removed"
MESSAGE_NAMESPACE_REMOVAL_FAILED = "Subsidiary namespace clean up failed"
MESSAGE_CLUSTER_ROLE_REMOVAL_FAILED = "Cluster role clean up failed"
MESSAGE_CLUSTER_ROLE_BINDING_REMOVAL_FAILED = "Cluster role binding clean up failed"
MESSAGE_ROLE_BINDING_REMOVAL_FAILED = "Role binding clean up failed"
MESSAGE_DISABLED = "Tenant disabled"

# Verbs the contact gets on their own Tenant object
OWNER_VERBS = ["get", "update", "patch"]


class TenantController(Controller):
    """Controller for core.edgenet.io Tenants"""

    name = "tenant"
    kind = constants.TENANT_KIND
    api_version = constants.TENANT_API_VERSION

    def run(self, threadiness=None, stop_event=None) -> bool:
        """Create the shared cluster roles before processing tenants"""
        access.create_cluster_roles(self.store)
        return super().run(threadiness=threadiness, stop_event=stop_event)

    def sync_handler(self, key: str):
        tenant = self.get_cached(key)
        if tenant is None:
            log.debug("Tenant %s no longer exists", key)
            return
        self.process_tenant(tenant)

    def process_tenant(self, tenant: KubeObject):
        """Converge the cluster to the tenant's enabled or disabled state"""
        with status_writeback(self.store, tenant):
            cluster_uid = self._cluster_uid()
            if tenant.spec.get("enabled"):
                self.provision(tenant, cluster_uid)
            else:
                self.teardown(tenant, cluster_uid)

    ## Enabled #################################################################

    def provision(self, tenant: KubeObject, cluster_uid: str):
        """Create everything an enabled tenant owns. Only the core namespace
        and the owner role binding decide the resulting state.
        """
        identity = tenant_identity(tenant.name, tenant.uid, cluster_uid)
        contact = tenant.spec.get("contact") or {}

        owner_role_name = access.object_specific_cluster_role_name(
            tenant.name, constants.TENANT_RESOURCE, tenant.name, "owner"
        )
        try:
            access.create_object_specific_cluster_role(
                self.store,
                tenant.name,
                constants.CORE_API_GROUP,
                constants.TENANT_RESOURCE,
                tenant.name,
                "owner",
                OWNER_VERBS,
                owner=tenant,
                labels=identity,
            )
        except StoreError as err:
            log.warning(
                "Couldn't create owner cluster role %s: %s", owner_role_name, err
            )
            self.recorder.warning(
                tenant, REASON_CREATION_FAILED, MESSAGE_OWNER_ROLE_FAILED
            )

        try:
            self._ensure_core_namespace(tenant, identity)
        except StoreError as err:
            log.warning("Couldn't create core namespace %s: %s", tenant.name, err)
            self.recorder.warning(
                tenant, REASON_CREATION_FAILED, MESSAGE_NAMESPACE_FAILED
            )
            set_state(tenant, STATE_FAILURE, MESSAGE_NAMESPACE_FAILED)
            return

        try:
            self._ensure_network_policy(tenant, identity)
        except StoreError as err:
            log.warning("Couldn't apply network policy in %s: %s", tenant.name, err)
            self.recorder.warning(
                tenant, REASON_NETWORK_POLICY_FAILED, MESSAGE_NETWORK_POLICY_FAILED
            )

        email = contact.get("email")
        try:
            self._require_contact(email)
            access.create_object_specific_cluster_role_binding(
                self.store,
                owner_role_name,
                contact.get("handle") or tenant.name,
                email,
                labels=identity,
            )
        except (StoreError, PreconditionError) as err:
            log.warning("Couldn't bind %s: %s", owner_role_name, err)
            self.recorder.warning(
                tenant, REASON_CREATION_FAILED, MESSAGE_CLUSTER_ROLE_BINDING_FAILED
            )

        try:
            self._require_contact(email)
            access.create_role_binding(
                self.store,
                tenant.name,
                constants.TENANT_OWNER_CLUSTER_ROLE,
                constants.TENANT_OWNER_CLUSTER_ROLE,
                email,
                labels=identity,
            )
        except (StoreError, PreconditionError) as err:
            log.warning("Couldn't create tenant owner role binding: %s", err)
            self.recorder.warning(tenant, REASON_BINDING_FAILED, MESSAGE_BINDING_FAILED)
            set_state(tenant, STATE_FAILURE, MESSAGE_BINDING_FAILED)
            return

        if get_status(tenant).get(STATE_KEY) != STATE_ESTABLISHED:
            self.recorder.normal(tenant, REASON_ESTABLISHED, MESSAGE_ESTABLISHED)
        set_state(tenant, STATE_ESTABLISHED, MESSAGE_ESTABLISHED)

    ## Disabled ################################################################

    def teardown(self, tenant: KubeObject, cluster_uid: str):
        """Remove everything labeled with the tenant's identity. Each step is
        attempted regardless of the others failing.
        """
        selector = tenant_identity_selector(tenant.name, tenant.uid, cluster_uid)
        log.debug("Tearing down tenant %s with selector %s", tenant.name, selector)

        try:
            namespaces, _ = self.store.list_objects(
                "Namespace", "v1", label_selector=selector
            )
        except StoreError as err:
            log.warning("Namespace listing of %s failed: %s", tenant.name, err)
            self.recorder.warning(
                tenant, REASON_REMOVAL_FAILED, MESSAGE_NAMESPACE_REMOVAL_FAILED
            )
            namespaces = []
        for namespace in namespaces:
            namespace_name = namespace["metadata"]["name"]
            try:
                self.store.delete_object("Namespace", namespace_name, api_version="v1")
            except StoreError as err:
                log.warning(
                    "Namespace %s of %s not removed: %s",
                    namespace_name,
                    tenant.name,
                    err,
                )
                self.recorder.warning(
                    tenant, REASON_REMOVAL_FAILED, MESSAGE_NAMESPACE_REMOVAL_FAILED
                )

        for kind, namespace, message in [
            ("ClusterRole", None, MESSAGE_CLUSTER_ROLE_REMOVAL_FAILED),
            ("ClusterRoleBinding", None, MESSAGE_CLUSTER_ROLE_BINDING_REMOVAL_FAILED),
            ("RoleBinding", tenant.name, MESSAGE_ROLE_BINDING_REMOVAL_FAILED),
        ]:
            try:
                deleted = self.store.delete_collection(
                    kind,
                    constants.RBAC_API_VERSION,
                    namespace=namespace,
                    label_selector=selector if namespace is None else None,
                )
                log.debug2("Deleted %d %s for %s", deleted, kind, tenant.name)
            except StoreError as err:
                log.warning("%s clean up of %s failed: %s", kind, tenant.name, err)
                self.recorder.warning(tenant, REASON_REMOVAL_FAILED, message)

        set_state(tenant, STATE_PENDING, MESSAGE_DISABLED)

    ## Implementation Details ##################################################

    def _cluster_uid(self) -> str:
        """The uid of the system namespace identifies the cluster"""
        system_namespace = self.store.get_object(
            "Namespace", config.cluster.system_namespace, api_version="v1"
        )
        if system_namespace is None:
            raise PreconditionError(
                f"System namespace {config.cluster.system_namespace} not found"
            )
        return KubeObject(system_namespace).uid

    @staticmethod
    def _require_contact(email: Optional[str]):
        if not email:
            raise PreconditionError("Tenant has no contact email")

    def _ensure_core_namespace(self, tenant: KubeObject, identity: dict) -> dict:
        manifest = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {
                "name": tenant.name,
                "labels": {
                    constants.LABEL_NAMESPACE_KIND: constants.NAMESPACE_KIND_CORE,
                    constants.LABEL_SUBTENANT: "false",
                    **identity,
                },
            },
        }
        set_owner_reference(manifest, tenant)
        return ensure_object(self.store, manifest, clock=self.clock)

    def _ensure_network_policy(self, tenant: KubeObject, identity: dict) -> dict:
        """The baseline policy admits traffic from the tenant's own namespaces
        and from public addresses on the node port range
        """
        policy_config = config.network_policy
        manifest = {
            "apiVersion": constants.NETWORKING_API_VERSION,
            "kind": "NetworkPolicy",
            "metadata": {
                "name": policy_config.name,
                "namespace": tenant.name,
                "labels": access.generated_labels(identity),
            },
            "spec": {
                "podSelector": {},
                "policyTypes": ["Ingress"],
                "ingress": [
                    {
                        "from": [
                            {
                                "namespaceSelector": {
                                    "matchLabels": {
                                        constants.LABEL_SUBTENANT: "false",
                                        **identity,
                                    }
                                }
                            },
                            {
                                "ipBlock": {
                                    "cidr": "0.0.0.0/0",
                                    "except": list(policy_config.excluded_cidrs),
                                }
                            },
                        ],
                        "ports": [
                            {
                                "port": int(policy_config.port),
                                "endPort": int(policy_config.end_port),
                            }
                        ],
                    }
                ],
            },
        }
        return ensure_object(
            self.store, manifest, compare_fields=["spec"], clock=self.clock
        )
