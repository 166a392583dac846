"""
Tests for the library config module and its validation
"""

# Third Party
import pytest

# First Party
import aconfig

# Local
from tenantop import config
from tenantop.config.config import (
    get_invalid_durations,
    get_invalid_port_range,
    validation_config,
)


def test_config_keys():
    """Make sure the keys the operators read are present with sane types"""
    assert isinstance(config.workers, int)
    assert isinstance(config.max_retries, int)
    assert config.tenant_request.expiry == "72hr"
    assert config.tenant_request.approved_retention == "24hr"
    assert config.cluster.system_namespace == "kube-system"
    assert config.tenant_resource_quota.resource_quota_name == "core-quota"
    assert set(config.controllers) == {
        "tenant_request",
        "tenant",
        "tenant_resource_quota",
    }


def test_missing_key_raises_attribute_error():
    with pytest.raises(AttributeError):
        config.not_a_real_key  # pylint: disable=pointless-statement


def test_shipped_config_is_valid():
    """The packaged config must pass its own validation"""
    assert not config.validation.get_invalid_params(
        config.library_config, validation_config
    )


########################
## get_invalid_params ##
########################


def test_get_invalid_params_reports_only_invalid_keys():
    assert config.validation.get_invalid_params(
        config=aconfig.Config({"workers": 0, "name": "foo"}),
        validation_config=aconfig.Config(
            {
                "workers": {"type": "int", "min": 1},
                "name": {"type": "str", "min_len": 1},
            },
        ),
    ) == ["workers"]


def test_get_invalid_params_nested_keys():
    assert config.validation.get_invalid_params(
        config=aconfig.Config({"workqueue": {"qps": -1, "burst": 10}}),
        validation_config=aconfig.Config(
            {
                "workqueue": {
                    "qps": {"type": "number", "min": 0},
                    "burst": {"type": "int", "min": 1},
                }
            }
        ),
    ) == ["workqueue.qps"]


def test_get_invalid_params_missing_value():
    """A missing key is only valid for optional params"""
    validation = aconfig.Config(
        {
            "required": {"type": "int"},
            "optional": {"type": "int", "optional": True},
        }
    )
    assert config.validation.get_invalid_params(
        aconfig.Config({}), validation
    ) == ["required"]


#####################
## parameter types ##
#####################


def test_number_parameter():
    ParamType = config.validation._NumberParameter
    assert ParamType().validate(1)
    assert ParamType().validate(1.5)
    assert ParamType(min=0, max=2).validate(2)
    assert not ParamType(min=0).validate(-0.1)
    assert not ParamType(max=1).validate(3)
    assert not ParamType().validate("1")
    assert not ParamType().validate(True)


def test_int_and_float_parameters():
    assert config.validation._IntParameter().validate(3)
    assert not config.validation._IntParameter().validate(3.0)
    assert config.validation._FloatParameter().validate(3.0)
    assert not config.validation._FloatParameter().validate(3)


def test_str_parameter():
    ParamType = config.validation._StrParameter
    assert ParamType().validate("")
    assert ParamType(min_len=2, max_len=3).validate("abc")
    assert not ParamType(min_len=2).validate("a")
    assert not ParamType(max_len=2).validate("abc")
    assert not ParamType().validate(1)


def test_bool_parameter():
    assert config.validation._BoolParameter().validate(False)
    assert not config.validation._BoolParameter().validate(0)


def test_enum_parameter():
    ParamType = config.validation._EnumParameter
    assert ParamType(values=["info", "debug"]).validate("info")
    assert not ParamType(values=["info", "debug"]).validate("trace")
    with pytest.raises(AssertionError):
        ParamType(values=[])


def test_list_parameter():
    ParamType = config.validation._ListParameter
    assert ParamType(item_type="str", min_len=1).validate(["tenant"])
    assert not ParamType(item_type="str", min_len=1).validate([])
    assert not ParamType(item_type="str").validate(["tenant", 1])
    assert not ParamType().validate("tenant")
    with pytest.raises(AssertionError):
        ParamType(item_type="not_a_builtin")


#############
## factory ##
#############


@pytest.mark.parametrize(
    ["param_args", "expected_type"],
    [
        ({"type": "number"}, "_NumberParameter"),
        ({"type": "int", "min": 1}, "_IntParameter"),
        ({"type": "float", "max": 2}, "_FloatParameter"),
        ({"type": "str", "min_len": 1}, "_StrParameter"),
        ({"type": "bool"}, "_BoolParameter"),
        ({"type": "enum", "values": [1]}, "_EnumParameter"),
        ({"type": "list", "item_type": "str"}, "_ListParameter"),
    ],
)
def test_construct_parameter_known_types(param_args, expected_type):
    param = config.validation._construct_parameter(param_args)
    assert type(param) is getattr(config.validation, expected_type)


def test_construct_parameter_bad_arguments():
    with pytest.raises(TypeError):
        config.validation._construct_parameter({"type": "number", "foo": "bar"})
    with pytest.raises(TypeError):
        config.validation._construct_parameter({"type": "enum"})


def test_construct_parameter_unknown_type():
    assert config.validation._construct_parameter({"type": "foobar"}) is None


def test_parse_validation_config_nested_type_key():
    """A nested section named 'type' is not mistaken for a parameter"""
    assert list(
        config.validation._parse_validation_config(
            aconfig.Config({"foo": {"type": {"baz": {"type": "int"}}}})
        ).keys()
    ) == ["foo.type.baz"]


##############################
## operator specific checks ##
##############################


def test_invalid_durations():
    bad = aconfig.Config(
        {
            "resync_period": "0s",
            "cache_sync_timeout": "1m",
            "watch_retry_delay": "soon",
            "tenant_request": {"expiry": "3d", "approved_retention": "24hr"},
        }
    )
    assert get_invalid_durations(bad) == ["watch_retry_delay", "tenant_request.expiry"]
    assert not get_invalid_durations(config.library_config)


def test_invalid_port_range():
    bad = aconfig.Config({"network_policy": {"port": 32768, "end_port": 30000}})
    assert get_invalid_port_range(bad) == [
        "network_policy.port",
        "network_policy.end_port",
    ]
    assert not get_invalid_port_range(config.library_config)
