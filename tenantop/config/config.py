"""
This module loads the library config at import time, checks it against the
validation yaml and the duration and port constraints the operators rely on,
and does the initial log config
"""

# Standard
from typing import List
import os

# First Party
import aconfig
import alog

# Local
from ..utils import parse_time_delta
from .validation import get_invalid_params, nested_get

# Keys holding durations in the 1hr2m3s format
DURATION_KEYS = [
    "resync_period",
    "cache_sync_timeout",
    "watch_retry_delay",
    "tenant_request.expiry",
    "tenant_request.approved_retention",
]


def get_invalid_durations(config: aconfig.Config) -> List[str]:
    """Get the duration keys whose values cannot be parsed. A zero resync
    period is written as 0s.
    """
    return [
        key
        for key in DURATION_KEYS
        if parse_time_delta(str(nested_get(config, key))) is None
    ]


def get_invalid_port_range(config: aconfig.Config) -> List[str]:
    """The network policy port range must not be empty"""
    policy = config.network_policy
    if int(policy.port) > int(policy.end_port):
        return ["network_policy.port", "network_policy.end_port"]
    return []


# Read the library config, allowing env overrides
library_config = aconfig.Config.from_yaml(
    os.path.join(os.path.dirname(__file__), "config.yaml"),
    override_env_vars=True,
)

# Parse the validation file, not allowing env overrides
validation_config = aconfig.Config.from_yaml(
    os.path.join(os.path.dirname(__file__), "config_validation.yaml"),
    override_env_vars=False,
)

invalid_params = get_invalid_params(library_config, validation_config)
if not invalid_params:
    invalid_params = get_invalid_durations(library_config) + get_invalid_port_range(
        library_config
    )
assert (
    not invalid_params
), f"Library configuration found invalid values: {invalid_params}"

# Do initial alog configuration
alog.configure(
    default_level=library_config.log_level,
    filters=library_config.log_filters,
    formatter="json" if library_config.log_json else "pretty",
    thread_id=library_config.log_thread_id,
)
