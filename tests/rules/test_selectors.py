from __future__ import annotations

import pytest

from kube_conformance.models import build_node
from kube_conformance.rules import labels_match, selector_matches

LABELS = {"app": "web", "tier": "frontend"}


@pytest.mark.parametrize(
    ("selector", "expected"),
    [
        ({}, True),
        ({"matchLabels": {"app": "web"}}, True),
        ({"matchLabels": {"app": "api"}}, False),
        ({"matchExpressions": [{"key": "tier", "operator": "In", "values": ["frontend", "edge"]}]}, True),
        ({"matchExpressions": [{"key": "tier", "operator": "NotIn", "values": ["frontend"]}]}, False),
        ({"matchExpressions": [{"key": "canary", "operator": "NotIn", "values": ["true"]}]}, True),
        ({"matchExpressions": [{"key": "app", "operator": "Exists"}]}, True),
        ({"matchExpressions": [{"key": "app", "operator": "DoesNotExist"}]}, False),
        ({"matchExpressions": [{"key": "app", "operator": "Bogus"}]}, False),
        (
            {
                "matchLabels": {"app": "web"},
                "matchExpressions": [{"key": "tier", "operator": "In", "values": ["backend"]}],
            },
            False,
        ),
    ],
)
def test_selector_matches(selector: dict, expected: bool) -> None:
    assert selector_matches(build_node(selector), LABELS) is expected


def test_missing_selector_matches_nothing() -> None:
    assert selector_matches(None, LABELS) is False


def test_labels_match_requires_every_pair() -> None:
    assert labels_match({"app": "web"}, LABELS)
    assert labels_match({}, LABELS)
    assert not labels_match({"app": "web", "tier": "backend"}, LABELS)
