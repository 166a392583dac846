"""
Label helpers: kubernetes label selector parsing/matching and the identity
labels the operators stamp on everything they create for a tenant
"""

# Standard
from typing import Dict, List, Optional, Tuple
import re

# Local
from . import constants

## Label Selectors #############################################################

# Requirement forms of the kubernetes label selector syntax. See
# https://kubernetes.io/docs/concepts/overview/working-with-objects/labels/#label-selectors
_SET_REQUIREMENT = re.compile(r"^\s*([^\s!=(),]+)\s+(in|notin)\s+\((.*)\)\s*$")
_EQUALITY_REQUIREMENT = re.compile(r"^\s*([^\s!=(),]+)\s*(==|=|!=)\s*([^\s,]*)\s*$")
_EXISTS_REQUIREMENT = re.compile(r"^\s*(!?)\s*([^\s!=(),]+)\s*$")


def parse_label_selector(selector: Optional[str]) -> List[Tuple[str, str, list]]:
    """Parse a selector string into (key, operator, values) requirements

    Raises:
        ValueError if a requirement cannot be parsed
    """
    requirements = []
    for part in _split_requirements(selector or ""):
        if not part.strip():
            continue
        if match := _SET_REQUIREMENT.match(part):
            values = [val.strip() for val in match.group(3).split(",") if val.strip()]
            requirements.append((match.group(1), match.group(2), values))
        elif match := _EQUALITY_REQUIREMENT.match(part):
            operator = "!=" if match.group(2) == "!=" else "="
            requirements.append((match.group(1), operator, [match.group(3)]))
        elif match := _EXISTS_REQUIREMENT.match(part):
            operator = "!" if match.group(1) else "exists"
            requirements.append((match.group(2), operator, []))
        else:
            raise ValueError(f"Invalid label selector requirement: {part!r}")
    return requirements


def _split_requirements(selector: str) -> List[str]:
    """Split on commas that are not inside a parenthesized value set"""
    parts, depth, current = [], 0, ""
    for char in selector:
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        depth += {"(": 1, ")": -1}.get(char, 0)
        current += char
    parts.append(current)
    return parts


def matches_requirements(
    labels: Dict[str, str], requirements: List[Tuple[str, str, list]]
) -> bool:
    """Check a label set against parsed selector requirements"""
    for key, operator, values in requirements:
        value = labels.get(key)
        if operator == "=" and value != values[0]:
            return False
        if operator == "!=" and value == values[0]:
            return False
        if operator == "in" and value not in values:
            return False
        if operator == "notin" and value in values:
            return False
        if operator == "exists" and key not in labels:
            return False
        if operator == "!" and key in labels:
            return False
    return True


def matches_selector(labels: Dict[str, str], label_selector: Optional[str]) -> bool:
    """Check a label set against a selector string"""
    return matches_requirements(labels or {}, parse_label_selector(label_selector))


def format_selector(labels: Dict[str, str]) -> str:
    """Render an equality selector for all of the given labels"""
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


## Tenant Identity #############################################################


def tenant_identity(tenant_name: str, tenant_uid: str, cluster_uid: str) -> dict:
    """The labels that tie an object to one incarnation of a tenant on one
    cluster
    """
    return {
        constants.LABEL_TENANT: tenant_name,
        constants.LABEL_TENANT_UID: tenant_uid,
        constants.LABEL_CLUSTER_UID: cluster_uid,
    }


def tenant_identity_selector(
    tenant_name: str, tenant_uid: str, cluster_uid: str
) -> str:
    return format_selector(tenant_identity(tenant_name, tenant_uid, cluster_uid))
