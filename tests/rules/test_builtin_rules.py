from __future__ import annotations

from decimal import Decimal
from typing import List

import pytest

from kube_conformance.models import GLOBAL_REF, Document, DocumentSet, Finding
from kube_conformance.normalization import parse, parse_stream
from kube_conformance.rules.builtin import BUILTIN_RULES
from kube_conformance.rules.builtin.availability import (
    HPATargetExists,
    MultipleReplicas,
    PDBDefined,
    ProbesConfigured,
)
from kube_conformance.rules.builtin.networking import (
    NetworkPolicyDefined,
    NoHostPort,
    ServiceSelectorMatches,
)
from kube_conformance.rules.builtin.observability import ExplicitNamespace, RecommendedLabels
from kube_conformance.rules.builtin.resources import (
    MemoryRequestMatchesLimit,
    ResourceLimitsSet,
    parse_quantity,
)
from kube_conformance.rules.builtin.security import (
    NoHostNamespaces,
    NoLatestTag,
    NonRootUser,
    NoPrivilegedContainers,
    NoPrivilegeEscalation,
    ReadOnlyRootFilesystem,
    image_tag,
)

DEPLOYMENT = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: my-app
  namespace: shop
  labels:
    app: my-app
spec:
  replicas: 3
  template:
    metadata:
      labels:
        app: my-app
    spec:
      containers:
        - name: app
          image: registry.local:5000/my-app:1.4.2
          resources:
            requests:
              cpu: 250m
              memory: 256Mi
            limits:
              memory: 256Mi
"""


def documents(text: str) -> List[Document]:
    stream = parse_stream(text, source="test.yaml")
    assert stream.errors == []
    return stream.documents


def paths(findings: List[Finding]) -> List[str]:
    return [str(finding.path) for finding in findings]


def test_builtin_catalog_ids_are_unique_and_stable() -> None:
    ids = [rule.id for rule in BUILTIN_RULES]

    assert len(ids) == len(set(ids))
    assert ids == [
        "SEC001",
        "SEC002",
        "SEC003",
        "SEC004",
        "SEC005",
        "SEC006",
        "RES001",
        "RES002",
        "AVL001",
        "AVL002",
        "AVL003",
        "AVL004",
        "NET001",
        "NET002",
        "NET003",
        "OBS001",
        "OBS002",
    ]


# Security ----------------------------------------------------------------------
def test_non_root_rule_accepts_pod_level_setting() -> None:
    document = parse(
        DEPLOYMENT.replace(
            "    spec:\n      containers:",
            "    spec:\n      securityContext:\n        runAsNonRoot: true\n      containers:",
        )
    )

    assert NonRootUser().evaluate(document) == []


def test_non_root_rule_accepts_container_level_setting() -> None:
    document = parse(
        """\
kind: Pod
metadata:
  name: web
spec:
  containers:
    - name: app
      image: nginx:1.25
      securityContext:
        runAsNonRoot: true
"""
    )

    assert NonRootUser().evaluate(document) == []


def test_non_root_rule_flags_each_unprotected_container() -> None:
    document = parse(
        """\
kind: Pod
metadata:
  name: web
spec:
  securityContext:
    runAsNonRoot: false
  containers:
    - name: app
      image: nginx:1.25
    - name: sidecar
      image: envoy:1.30
"""
    )

    findings = NonRootUser().evaluate(document)

    assert paths(findings) == [
        "spec.containers[0].securityContext.runAsNonRoot",
        "spec.containers[1].securityContext.runAsNonRoot",
    ]
    assert "'sidecar'" in findings[1].message


def test_privileged_and_escalation_rules_cover_init_containers() -> None:
    document = parse(
        """\
kind: Pod
metadata:
  name: web
spec:
  initContainers:
    - name: setup
      image: busybox:1.36
      securityContext:
        privileged: true
  containers:
    - name: app
      image: nginx:1.25
      securityContext:
        allowPrivilegeEscalation: false
        readOnlyRootFilesystem: true
"""
    )

    assert paths(NoPrivilegedContainers().evaluate(document)) == [
        "spec.initContainers[0].securityContext.privileged"
    ]
    assert paths(NoPrivilegeEscalation().evaluate(document)) == [
        "spec.initContainers[0].securityContext.allowPrivilegeEscalation"
    ]
    assert paths(ReadOnlyRootFilesystem().evaluate(document)) == [
        "spec.initContainers[0].securityContext.readOnlyRootFilesystem"
    ]


def test_latest_tag_finding_points_at_image() -> None:
    document = parse(
        """\
kind: Pod
metadata:
  name: web
spec:
  containers:
    - name: app
      image: myapp:latest
"""
    )

    findings = NoLatestTag().evaluate(document)

    assert len(findings) == 1
    assert str(findings[0].path) == "spec.containers[0].image"
    assert findings[0].rule_id == "SEC005"
    assert "latest" in findings[0].message


def test_latest_tag_rule_flags_untagged_and_accepts_digests() -> None:
    document = parse(
        """\
kind: Pod
metadata:
  name: web
spec:
  containers:
    - name: untagged
      image: registry.local:5000/team/app
    - name: pinned
      image: app@sha256:0123456789abcdef
    - name: versioned
      image: app:2.0
"""
    )

    findings = NoLatestTag().evaluate(document)

    assert paths(findings) == ["spec.containers[0].image"]
    assert "no tag" in findings[0].message


@pytest.mark.parametrize(
    ("image", "tag"),
    [
        ("nginx", None),
        ("nginx:1.25", "1.25"),
        ("registry.local:5000/nginx", None),
        ("registry.local:5000/nginx:latest", "latest"),
        ("nginx:1.25@sha256:abc", "1.25"),
    ],
)
def test_image_tag(image: str, tag: str | None) -> None:
    assert image_tag(image) == tag


def test_host_namespace_rule_uses_cronjob_pod_spec() -> None:
    document = parse(
        """\
kind: CronJob
metadata:
  name: backup
spec:
  jobTemplate:
    spec:
      template:
        spec:
          hostNetwork: true
          hostPID: false
          containers:
            - name: backup
              image: backup:1.0
"""
    )

    findings = NoHostNamespaces().evaluate(document)

    assert paths(findings) == ["spec.jobTemplate.spec.template.spec.hostNetwork"]


def test_workload_rules_ignore_other_kinds() -> None:
    document = parse("kind: ConfigMap\nmetadata:\n  name: settings\n")

    assert not NonRootUser().applies_to(document)
    assert NonRootUser().evaluate(document) == []


# Resources ---------------------------------------------------------------------
def test_resource_limits_rule_flags_missing_memory_limit() -> None:
    document = parse(DEPLOYMENT.replace("            limits:\n              memory: 256Mi\n", ""))

    findings = ResourceLimitsSet().evaluate(document)

    assert paths(findings) == ["spec.template.spec.containers[0].resources.limits.memory"]
    assert findings[0].severity.value == "error"


def test_resource_limits_rule_accepts_complete_container() -> None:
    assert ResourceLimitsSet().evaluate(parse(DEPLOYMENT)) == []


def test_resource_limits_rule_treats_null_values_as_missing() -> None:
    document = parse(
        DEPLOYMENT.replace("              cpu: 250m\n", "              cpu:\n").replace(
            "            limits:\n              memory: 256Mi\n",
            "            limits:\n              memory: ~\n",
        )
    )

    findings = ResourceLimitsSet().evaluate(document)

    assert paths(findings) == [
        "spec.template.spec.containers[0].resources.limits.memory",
        "spec.template.spec.containers[0].resources.requests.cpu",
    ]


def test_memory_request_rule_compares_quantities() -> None:
    equal = parse(DEPLOYMENT.replace("memory: 256Mi\n", "memory: 268435456\n", 1))
    differing = parse(DEPLOYMENT.replace("memory: 256Mi\n", "memory: 128Mi\n", 1))

    assert MemoryRequestMatchesLimit().evaluate(equal) == []
    findings = MemoryRequestMatchesLimit().evaluate(differing)
    assert paths(findings) == ["spec.template.spec.containers[0].resources.requests.memory"]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("500m", Decimal("0.5")),
        ("1Gi", Decimal(2) ** 30),
        ("2", Decimal(2)),
        (3, Decimal(3)),
        ("1e3", Decimal(1000)),
        ("12XYZ", None),
        (True, None),
    ],
)
def test_parse_quantity(value: object, expected: Decimal | None) -> None:
    assert parse_quantity(value) == expected


# Availability ------------------------------------------------------------------
def test_probes_rule_points_at_container() -> None:
    findings = ProbesConfigured().evaluate(parse(DEPLOYMENT))

    assert paths(findings) == ["spec.template.spec.containers[0]"]


def test_probes_rule_ignores_null_health_checks() -> None:
    nulls = DEPLOYMENT.replace(
        "          resources:\n", "          livenessProbe:\n          readinessProbe: ~\n          resources:\n"
    )
    configured = DEPLOYMENT.replace(
        "          resources:\n",
        "          readinessProbe:\n            httpGet:\n              path: /ready\n              port: 8080\n"
        "          resources:\n",
    )

    findings = ProbesConfigured().evaluate(parse(nulls))

    assert paths(findings) == ["spec.template.spec.containers[0]"]
    assert ProbesConfigured().evaluate(parse(configured)) == []


def test_pdb_rule_flags_deployment_without_budget() -> None:
    docs = documents(DEPLOYMENT)

    findings = PDBDefined().evaluate_all(DocumentSet.of(docs))

    assert len(findings) == 1
    assert findings[0].document_ref == docs[0].ref
    assert str(findings[0].path) == "spec.template.metadata.labels"
    assert "app=my-app" in findings[0].message


def test_pdb_rule_accepts_matching_budget_in_same_namespace() -> None:
    budget = """\
---
apiVersion: policy/v1
kind: PodDisruptionBudget
metadata:
  name: my-app
  namespace: shop
spec:
  minAvailable: 1
  selector:
    matchLabels:
      app: my-app
"""

    assert PDBDefined().evaluate_all(DocumentSet.of(documents(DEPLOYMENT + budget))) == []

    elsewhere = budget.replace("namespace: shop", "namespace: other")
    findings = PDBDefined().evaluate_all(DocumentSet.of(documents(DEPLOYMENT + elsewhere)))
    assert len(findings) == 1


def test_pdb_rule_falls_back_to_workload_labels() -> None:
    unlabelled_template = DEPLOYMENT.replace("    metadata:\n      labels:\n        app: my-app\n", "")
    budget = """\
---
apiVersion: policy/v1
kind: PodDisruptionBudget
metadata:
  name: my-app
  namespace: shop
spec:
  selector:
    matchLabels:
      app: my-app
"""

    covered = documents(unlabelled_template + budget)
    assert PDBDefined().evaluate_all(DocumentSet.of(covered)) == []

    findings = PDBDefined().evaluate_all(DocumentSet.of(documents(unlabelled_template)))
    assert paths(findings) == ["metadata.labels"]
    assert "app=my-app" in findings[0].message


def test_replica_rule_flags_single_replica_unless_autoscaled() -> None:
    single = DEPLOYMENT.replace("replicas: 3", "replicas: 1")
    hpa = """\
---
apiVersion: autoscaling/v2
kind: HorizontalPodAutoscaler
metadata:
  name: my-app
  namespace: shop
spec:
  scaleTargetRef:
    apiVersion: apps/v1
    kind: Deployment
    name: my-app
  minReplicas: 2
  maxReplicas: 5
"""

    findings = MultipleReplicas().evaluate_all(DocumentSet.of(documents(single)))
    assert paths(findings) == ["spec.replicas"]

    assert MultipleReplicas().evaluate_all(DocumentSet.of(documents(single + hpa))) == []
    assert HPATargetExists().evaluate_all(DocumentSet.of(documents(single + hpa))) == []


def test_replica_rule_treats_missing_replicas_as_one() -> None:
    document = DEPLOYMENT.replace("  replicas: 3\n", "")

    findings = MultipleReplicas().evaluate_all(DocumentSet.of(documents(document)))

    assert len(findings) == 1
    assert "runs 1 replica(s)" in findings[0].message


def test_hpa_rule_flags_missing_target() -> None:
    docs = documents(
        """\
kind: HorizontalPodAutoscaler
metadata:
  name: ghost
spec:
  scaleTargetRef:
    kind: Deployment
    name: ghost
"""
    )

    findings = HPATargetExists().evaluate_all(DocumentSet.of(docs))

    assert paths(findings) == ["spec.scaleTargetRef"]
    assert "Deployment/ghost" in findings[0].message


# Networking --------------------------------------------------------------------
def test_network_policy_rule_reports_globally_per_namespace() -> None:
    policy = """\
---
kind: NetworkPolicy
metadata:
  name: default-deny
  namespace: shop
spec:
  podSelector: {}
"""
    pod = """\
---
kind: Pod
metadata:
  name: debug
spec:
  containers:
    - name: shell
      image: busybox:1.36
"""

    findings = NetworkPolicyDefined().evaluate_all(
        DocumentSet.of(documents(DEPLOYMENT + pod + policy))
    )

    assert len(findings) == 1
    assert findings[0].document_ref == GLOBAL_REF
    assert "'default'" in findings[0].message


def test_service_selector_rule() -> None:
    service = """\
---
kind: Service
metadata:
  name: my-app
  namespace: shop
spec:
  selector:
    app: my-app
"""
    orphan = service.replace("app: my-app\n", "app: missing\n").replace("name: my-app", "name: orphan")
    external = """\
---
kind: Service
metadata:
  name: upstream
  namespace: shop
spec:
  type: ExternalName
  externalName: example.com
  selector:
    app: nobody
"""

    docs = documents(DEPLOYMENT + service + orphan + external)
    findings = ServiceSelectorMatches().evaluate_all(DocumentSet.of(docs))

    assert [finding.document_ref.name for finding in findings] == ["orphan"]
    assert paths(findings) == ["spec.selector"]


def test_host_port_rule() -> None:
    document = parse(
        """\
kind: Pod
metadata:
  name: web
spec:
  containers:
    - name: app
      image: nginx:1.25
      ports:
        - containerPort: 80
        - containerPort: 443
          hostPort: 443
"""
    )

    assert paths(NoHostPort().evaluate(document)) == ["spec.containers[0].ports[1].hostPort"]


# Observability -----------------------------------------------------------------
def test_recommended_labels_rule() -> None:
    findings = RecommendedLabels().evaluate(parse(DEPLOYMENT))

    assert paths(findings) == ['metadata.labels["app.kubernetes.io/name"]']

    labelled = DEPLOYMENT.replace("    app: my-app\nspec:", "    app.kubernetes.io/name: my-app\nspec:")
    assert RecommendedLabels().evaluate(parse(labelled)) == []


def test_explicit_namespace_rule_skips_cluster_scoped_kinds() -> None:
    rule = ExplicitNamespace()
    namespace = parse("kind: Namespace\nmetadata:\n  name: shop\n")
    config_map = parse("kind: ConfigMap\nmetadata:\n  name: settings\n")

    assert not rule.applies_to(namespace)
    assert rule.applies_to(config_map)
    assert paths(rule.evaluate(config_map)) == ["metadata.namespace"]
    assert rule.evaluate(parse(DEPLOYMENT)) == []


def test_rules_are_deterministic() -> None:
    docs = documents(DEPLOYMENT)
    document_set = DocumentSet.of(docs)

    for rule_class in BUILTIN_RULES:
        rule = rule_class()
        if hasattr(rule, "evaluate_all"):
            assert rule.evaluate_all(document_set) == rule.evaluate_all(document_set)
        else:
            assert rule.evaluate(docs[0]) == rule.evaluate(docs[0])
