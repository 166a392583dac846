"""
Tests for the __main__.py entrypoint to the library as an executable
"""

# Standard
from unittest import mock
import copy
import json
import logging
import os
import tempfile

# Third Party
import pytest
import yaml

# Local
from tenantop import config, constants
from tenantop.__main__ import main
from tenantop.config import library_config as config_detail_dict
from tenantop.exceptions import ConfigError
from tenantop.log_format import TenantOpJsonFormatter
from tenantop.objects import KubeObject
from tenantop.store import DryRunStore
from tenantop.test_helpers.helpers import (
    configure_logging,
    library_config,
    make_tenant,
)

## Helpers #####################################################################


class AlogConfigureMock:
    def __init__(self):
        self.kwargs = None

    def __call__(self, **kwargs):
        self.kwargs = kwargs


@pytest.fixture(autouse=True)
def restore_config():
    """main writes every parsed arg back into the library config, so each test
    runs against a copy that is reverted afterwards
    """
    with library_config(**copy.deepcopy(dict(config_detail_dict))):
        yield
    configure_logging()


@pytest.fixture
def alog_mock():
    configure_mock = AlogConfigureMock()
    with mock.patch("alog.configure", configure_mock):
        yield configure_mock


@pytest.fixture
def manager_mock():
    with mock.patch(
        "tenantop.cmd.run_operator_cmd.OperatorManager"
    ) as manager_type, mock.patch("signal.signal"):
        manager_type.return_value.failed = False
        yield manager_type


def get_store(manager_type) -> DryRunStore:
    return manager_type.call_args[0][0]


## Happy Path Tests ############################################################


def test_run_dry_run(alog_mock, manager_mock):
    """Make sure that the run command starts and waits on the manager"""
    main(["run", "--dry_run"])
    store = get_store(manager_mock)
    assert isinstance(store, DryRunStore)
    assert manager_mock.call_args[1]["controller_names"] == [
        "tenant_request",
        "tenant",
        "tenant_resource_quota",
    ]
    manager = manager_mock.return_value
    manager.start.assert_called_once_with(threadiness=2)
    manager.wait.assert_called_once()


def test_run_is_the_default_command(alog_mock, manager_mock):
    main(["--dry_run"])
    manager_mock.return_value.start.assert_called_once()


def test_dry_run_seeds_system_namespace(alog_mock, manager_mock):
    main(["--dry_run"])
    store = get_store(manager_mock)
    assert store.get_object("Namespace", config.cluster.system_namespace) is not None


def test_library_config_overrides(alog_mock, manager_mock):
    """Make sure that library config values can be set from the command line"""
    main(["--dry_run", "--workers", "5", "--controllers", "tenant"])
    assert config.workers == 5
    assert manager_mock.call_args[1]["controller_names"] == ["tenant"]
    manager_mock.return_value.start.assert_called_once_with(threadiness=5)


def test_nested_library_config_overrides(alog_mock, manager_mock):
    main(["--dry_run", "--cluster.system_namespace", "edgenet-system"])
    assert config.cluster.system_namespace == "edgenet-system"
    store = get_store(manager_mock)
    assert store.get_object("Namespace", "edgenet-system") is not None


def test_resource_dir(alog_mock, manager_mock):
    """Make sure that a --resource_dir can be specified and that valid yaml
    files are parsed from the directory
    """
    with tempfile.TemporaryDirectory() as resource_dir:
        with open(os.path.join(resource_dir, "tenant.yaml"), "w") as handle:
            handle.write(yaml.safe_dump_all([make_tenant(), make_tenant("other")]))

        # Files that are not yaml are skipped
        with open(os.path.join(resource_dir, "README.md"), "w") as handle:
            handle.write("# Tenants\nThese are the tenants!")

        main(["--dry_run", "--resource_dir", resource_dir])

    store = get_store(manager_mock)
    for name in ["lab", "other"]:
        assert (
            store.get_object(
                constants.TENANT_KIND, name, api_version=constants.TENANT_API_VERSION
            )
            is not None
        )
    assert store.get_object("Namespace", config.cluster.system_namespace) is not None


def test_live_run_uses_openshift_store(alog_mock, manager_mock):
    with mock.patch("tenantop.cmd.run_operator_cmd.OpenshiftStore") as store_type:
        main(["run"])
    store_type.assert_called_once()
    assert get_store(manager_mock) is store_type.return_value


def test_log_configuration(alog_mock, manager_mock):
    main(["--dry_run", "--log_level", "debug", "--log_filters", "TENANT:debug4"])
    assert alog_mock.kwargs.get("default_level") == "debug"
    assert alog_mock.kwargs.get("filters") == "TENANT:debug4"
    assert alog_mock.kwargs.get("formatter") == "pretty"
    assert alog_mock.kwargs.get("thread_id") is False


def test_json_log_configuration(alog_mock, manager_mock):
    main(["--dry_run", "--log_json", "--log_thread_id"])
    assert isinstance(alog_mock.kwargs.get("formatter"), TenantOpJsonFormatter)
    assert alog_mock.kwargs.get("thread_id") is True


## Error Case Tests ############################################################


def test_failed_manager_exits_non_zero(alog_mock, manager_mock):
    manager_mock.return_value.failed = True
    with pytest.raises(SystemExit) as exit_info:
        main(["--dry_run"])
    assert exit_info.value.code == 1


def test_resource_dir_without_dry_run(alog_mock, manager_mock):
    """Make sure that --resource_dir can only be given in dry run mode"""
    with tempfile.TemporaryDirectory() as resource_dir:
        with pytest.raises(AssertionError):
            main(["--resource_dir", resource_dir])
    manager_mock.assert_not_called()


def test_resource_dir_not_found(alog_mock, manager_mock):
    with pytest.raises(AssertionError):
        main(["--dry_run", "--resource_dir", "some/bad/path"])


def test_resource_dir_to_file(alog_mock, manager_mock):
    with tempfile.NamedTemporaryFile("w") as handle:
        with pytest.raises(AssertionError):
            main(["--dry_run", "--resource_dir", handle.name])


def test_unknown_controller(alog_mock):
    """The real manager rejects controller names it does not know"""
    with mock.patch("signal.signal"):
        with pytest.raises(ConfigError, match="Unknown controller"):
            main(["--dry_run", "--controllers", "tenant", "nope"])


## Log Format ##################################################################


def test_json_formatter_adds_resource_identity():
    record = logging.LogRecord(
        name="TENANT",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Reconciling %s",
        args=("lab",),
        exc_info=None,
    )
    tenant = make_tenant()
    tenant["metadata"]["resourceVersion"] = "42"
    record.resource = KubeObject(tenant)

    formatted = json.loads(TenantOpJsonFormatter().format(record))
    assert formatted["kind"] == constants.TENANT_KIND
    assert formatted["apiVersion"] == constants.TENANT_API_VERSION
    assert formatted["resourceVersion"] == "42"
    assert formatted["resourceName"] == "lab"
