"""
Tests for label selector parsing and the tenant identity labels
"""

# Third Party
import pytest

# Local
from tenantop import constants
from tenantop.labels import (
    format_selector,
    matches_selector,
    parse_label_selector,
    tenant_identity,
    tenant_identity_selector,
)

LABELS = {"app": "web", "tier": "frontend", "edge-net.io/tenant": "lab"}


def test_parse_label_selector_forms():
    assert parse_label_selector("a=1, b==2,c!=3, d in (x, y), e notin (z), f, !g") == [
        ("a", "=", ["1"]),
        ("b", "=", ["2"]),
        ("c", "!=", ["3"]),
        ("d", "in", ["x", "y"]),
        ("e", "notin", ["z"]),
        ("f", "exists", []),
        ("g", "!", []),
    ]


def test_parse_label_selector_empty():
    assert parse_label_selector(None) == []
    assert parse_label_selector("") == []


def test_parse_label_selector_invalid():
    with pytest.raises(ValueError):
        parse_label_selector("a in b")


@pytest.mark.parametrize(
    ["selector", "matches"],
    [
        (None, True),
        ("app=web", True),
        ("app=api", False),
        ("app!=api", True),
        ("tier in (frontend, backend)", True),
        ("tier notin (frontend)", False),
        ("edge-net.io/tenant", True),
        ("!edge-net.io/tenant", False),
        ("missing", False),
        ("!missing", True),
        ("app=web,tier=backend", False),
    ],
)
def test_matches_selector(selector, matches):
    assert matches_selector(LABELS, selector) is matches


def test_format_selector_is_sorted():
    assert format_selector({"b": "2", "a": "1"}) == "a=1,b=2"
    assert matches_selector({"a": "1", "b": "2"}, format_selector({"b": "2", "a": "1"}))


def test_tenant_identity():
    identity = tenant_identity("lab", "tenant-uid", "cluster-uid")
    assert identity == {
        constants.LABEL_TENANT: "lab",
        constants.LABEL_TENANT_UID: "tenant-uid",
        constants.LABEL_CLUSTER_UID: "cluster-uid",
    }
    selector = tenant_identity_selector("lab", "tenant-uid", "cluster-uid")
    assert matches_selector(identity, selector)
    assert not matches_selector(
        tenant_identity("lab", "other-uid", "cluster-uid"), selector
    )
