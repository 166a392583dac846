"""
Tests for the TenantController
"""

# Standard
import threading

# Third Party
import pytest

# Local
from tenantop import access, config, constants
from tenantop.controllers import TenantController
from tenantop.controllers.tenant import (
    MESSAGE_BINDING_FAILED,
    MESSAGE_CLUSTER_ROLE_REMOVAL_FAILED,
    MESSAGE_DISABLED,
    MESSAGE_ESTABLISHED,
    MESSAGE_NAMESPACE_FAILED,
    MESSAGE_NAMESPACE_REMOVAL_FAILED,
    REASON_BINDING_FAILED,
    REASON_CREATION_FAILED,
    REASON_ESTABLISHED,
    REASON_NETWORK_POLICY_FAILED,
    REASON_REMOVAL_FAILED,
)
from tenantop.exceptions import PreconditionError, StoreError
from tenantop.test_helpers.helpers import (
    TEST_CLUSTER_UID,
    FailForKinds,
    MockStore,
    make_controller,
    make_tenant,
    reconcile,
)

OWNER_ROLE = "edgenet:lab:tenants:lab-owner"
OWNER_ROLE_BINDING = f"{OWNER_ROLE}-johndoe"

## Helpers #####################################################################


def setup(*resources, **store_kwargs):
    resources = resources or (make_tenant(),)
    store = MockStore(resources=list(resources), **store_kwargs)
    controller = make_controller(TenantController, store)
    return store, controller


def set_enabled(store, enabled):
    current = store.get_obj(constants.TENANT_KIND, "lab")
    current["spec"]["enabled"] = enabled
    store.update_object(current)


def get_namespace(store, name="lab"):
    return store.get_obj("Namespace", name)


def get_role_binding(store):
    return store.get_obj("RoleBinding", constants.TENANT_OWNER_CLUSTER_ROLE, "lab")


## Enabled #####################################################################


def test_enabled_tenant_is_established():
    store, controller = setup()
    tenant = reconcile(controller, "lab")
    assert tenant.status == {"state": "Established", "message": MESSAGE_ESTABLISHED}

    identity = {
        constants.LABEL_TENANT: "lab",
        constants.LABEL_TENANT_UID: tenant.uid,
        constants.LABEL_CLUSTER_UID: TEST_CLUSTER_UID,
    }

    # Core namespace
    namespace = get_namespace(store)
    assert namespace["metadata"]["labels"] == {
        constants.LABEL_NAMESPACE_KIND: constants.NAMESPACE_KIND_CORE,
        constants.LABEL_SUBTENANT: "false",
        **identity,
    }
    assert namespace["metadata"]["ownerReferences"][0]["uid"] == tenant.uid

    # Owner access to the tenant object
    owner_role = store.get_obj("ClusterRole", OWNER_ROLE)
    assert owner_role["rules"][0]["resourceNames"] == ["lab"]
    assert owner_role["metadata"]["ownerReferences"][0]["uid"] == tenant.uid
    owner_binding = store.get_obj("ClusterRoleBinding", OWNER_ROLE_BINDING)
    assert owner_binding["subjects"] == [access.user_subject("john.doe@edge-net.org")]
    assert owner_binding["metadata"]["labels"][constants.LABEL_TENANT] == "lab"

    # Owner access in the core namespace
    role_binding = get_role_binding(store)
    assert role_binding["roleRef"]["name"] == constants.TENANT_OWNER_CLUSTER_ROLE
    assert role_binding["subjects"] == [access.user_subject("john.doe@edge-net.org")]

    # Baseline network policy
    policy = store.get_obj("NetworkPolicy", config.network_policy.name, "lab")
    [rule] = policy["spec"]["ingress"]
    assert rule["from"][0]["namespaceSelector"]["matchLabels"] == {
        constants.LABEL_SUBTENANT: "false",
        **identity,
    }
    assert rule["from"][1]["ipBlock"]["except"] == list(
        config.network_policy.excluded_cidrs
    )
    assert rule["ports"] == [{"port": 30000, "endPort": 32768}]

    [event] = store.events(REASON_ESTABLISHED)
    assert event["message"] == MESSAGE_ESTABLISHED


def test_established_reconcile_is_idempotent():
    store, controller = setup()
    reconcile(controller, "lab")
    version = store.resource_version
    reconcile(controller, "lab")
    assert store.resource_version == version
    assert len(store.events(REASON_ESTABLISHED)) == 1


def test_drifted_children_are_restored():
    store, controller = setup()
    reconcile(controller, "lab")
    binding = get_role_binding(store)
    binding["subjects"] = [access.user_subject("intruder@example.com")]
    store.update_object(binding)

    reconcile(controller, "lab")
    assert get_role_binding(store)["subjects"] == [
        access.user_subject("john.doe@edge-net.org")
    ]


def test_contact_change_updates_bindings():
    store, controller = setup()
    reconcile(controller, "lab")
    current = store.get_obj(constants.TENANT_KIND, "lab")
    current["spec"]["contact"]["email"] = "jane.doe@edge-net.org"
    store.update_object(current)

    reconcile(controller, "lab")
    assert get_role_binding(store)["subjects"] == [
        access.user_subject("jane.doe@edge-net.org")
    ]


def test_missing_system_namespace():
    store, controller = setup(make_tenant(), with_system_namespace=False)
    with pytest.raises(PreconditionError):
        reconcile(controller, "lab")
    assert get_namespace(store) is None


def test_namespace_failure():
    store, controller = setup(create_fail=FailForKinds("Namespace"))
    tenant = reconcile(controller, "lab")
    assert tenant.status == {"state": "Failure", "message": MESSAGE_NAMESPACE_FAILED}
    assert [event["message"] for event in store.events(REASON_CREATION_FAILED)] == [
        MESSAGE_NAMESPACE_FAILED
    ]
    assert get_role_binding(store) is None


def test_role_binding_failure():
    store, controller = setup(create_fail=FailForKinds("RoleBinding"))
    tenant = reconcile(controller, "lab")
    assert tenant.status == {"state": "Failure", "message": MESSAGE_BINDING_FAILED}
    assert store.events(REASON_BINDING_FAILED)
    assert not store.events(REASON_ESTABLISHED)


def test_missing_contact_email():
    store, controller = setup(make_tenant(contact={"handle": "johndoe"}))
    tenant = reconcile(controller, "lab")
    assert tenant.status["state"] == "Failure"
    assert tenant.status["message"] == MESSAGE_BINDING_FAILED
    assert store.get_obj("ClusterRoleBinding", OWNER_ROLE_BINDING) is None
    assert get_namespace(store) is not None


def test_network_policy_failure_does_not_block_establishment():
    store, controller = setup(create_fail=FailForKinds("NetworkPolicy"))
    tenant = reconcile(controller, "lab")
    assert tenant.status["state"] == "Established"
    assert store.events(REASON_NETWORK_POLICY_FAILED)


def test_failure_recovers():
    failer = FailForKinds("RoleBinding")
    store, controller = setup(create_fail=failer)
    assert reconcile(controller, "lab").status["state"] == "Failure"
    failer.kinds.clear()
    assert reconcile(controller, "lab").status["state"] == "Established"
    assert len(store.events(REASON_ESTABLISHED)) == 1


## Disabled ####################################################################


def sub_namespace(name, tenant_uid, kind=constants.NAMESPACE_KIND_SUB):
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {
            "name": name,
            "labels": {
                constants.LABEL_NAMESPACE_KIND: kind,
                constants.LABEL_TENANT: "lab",
                constants.LABEL_TENANT_UID: tenant_uid,
                constants.LABEL_CLUSTER_UID: TEST_CLUSTER_UID,
            },
        },
    }


def test_disable_tears_down():
    store, controller = setup()
    tenant = reconcile(controller, "lab")
    store.create_object(sub_namespace("lab-sub", tenant.uid))
    store.create_object(sub_namespace("other-incarnation", "old-uid"))
    access.create_cluster_roles(store)

    set_enabled(store, False)
    tenant = reconcile(controller, "lab")
    assert tenant.status == {"state": "Pending", "message": MESSAGE_DISABLED}

    assert get_namespace(store) is None
    assert get_namespace(store, "lab-sub") is None
    assert get_role_binding(store) is None
    assert store.get_obj("ClusterRole", OWNER_ROLE) is None
    assert store.get_obj("ClusterRoleBinding", OWNER_ROLE_BINDING) is None
    assert store.get_obj("NetworkPolicy", config.network_policy.name, "lab") is None

    # Objects of other tenant incarnations and shared roles are kept
    assert get_namespace(store, "other-incarnation") is not None
    for name in access.SHARED_CLUSTER_ROLES:
        assert store.get_obj("ClusterRole", name) is not None

    # The tenant itself is kept
    assert store.has_obj(constants.TENANT_KIND, "lab")


def test_disable_is_idempotent():
    store, controller = setup(make_tenant(enabled=False))
    reconcile(controller, "lab")
    version = store.resource_version
    reconcile(controller, "lab")
    assert store.resource_version == version


def test_disable_continues_past_failures():
    store, controller = setup(delete_collection_fail=FailForKinds("ClusterRole"))
    reconcile(controller, "lab")
    set_enabled(store, False)

    tenant = reconcile(controller, "lab")
    assert tenant.status["state"] == "Pending"
    assert [event["message"] for event in store.events(REASON_REMOVAL_FAILED)] == [
        MESSAGE_CLUSTER_ROLE_REMOVAL_FAILED
    ]
    assert store.get_obj("ClusterRole", OWNER_ROLE) is not None
    assert store.get_obj("ClusterRoleBinding", OWNER_ROLE_BINDING) is None
    assert get_namespace(store) is None


def fail_namespace_delete(name):
    def delete_fail(kind, obj_name, *_, **__):
        if kind == "Namespace" and obj_name == name:
            raise StoreError(f"Namespace {obj_name} is stuck")

    return delete_fail


def test_disable_continues_past_namespace_failures():
    store, controller = setup(delete_fail=fail_namespace_delete("lab"))
    tenant = reconcile(controller, "lab")
    store.create_object(sub_namespace("lab-sub", tenant.uid))
    store.create_object(sub_namespace("lab-team", tenant.uid))

    set_enabled(store, False)
    tenant = reconcile(controller, "lab")
    assert tenant.status == {"state": "Pending", "message": MESSAGE_DISABLED}
    assert [event["message"] for event in store.events(REASON_REMOVAL_FAILED)] == [
        MESSAGE_NAMESPACE_REMOVAL_FAILED
    ]

    # The stuck namespace does not keep the others around
    assert get_namespace(store) is not None
    assert get_namespace(store, "lab-sub") is None
    assert get_namespace(store, "lab-team") is None
    assert get_role_binding(store) is None


def test_reenable_after_disable():
    store, controller = setup()
    reconcile(controller, "lab")
    set_enabled(store, False)
    reconcile(controller, "lab")
    set_enabled(store, True)

    tenant = reconcile(controller, "lab")
    assert tenant.status["state"] == "Established"
    assert get_namespace(store) is not None
    assert get_role_binding(store) is not None
    assert len(store.events(REASON_ESTABLISHED)) == 2


def test_tenant_deletion_collects_owned_objects():
    store, controller = setup()
    reconcile(controller, "lab")
    store.delete_object(constants.TENANT_KIND, "lab")
    assert get_namespace(store) is None
    assert store.get_obj("ClusterRole", OWNER_ROLE) is None
    assert reconcile(controller, "lab") is None


## Run #########################################################################


@pytest.mark.timeout(10)
def test_run_creates_shared_cluster_roles():
    store, controller = setup()
    stop_event = threading.Event()
    stop_event.set()
    assert controller.run(threadiness=1, stop_event=stop_event)
    for name in access.SHARED_CLUSTER_ROLES:
        assert store.has_obj("ClusterRole", name)
