from __future__ import annotations

import pytest

from kube_conformance.models import (
    GLOBAL_REF,
    ROOT,
    Document,
    DocumentPath,
    DocumentRef,
    DocumentSet,
    MappingNode,
    ScalarNode,
    SequenceNode,
    build_node,
    string_map,
)


def make_document(data: dict, **ref: object) -> Document:
    root = build_node(data)
    assert isinstance(root, MappingNode)
    metadata = data.get("metadata", {})
    return Document(
        root=root,
        ref=DocumentRef(
            source=str(ref.get("source", "test.yaml")),
            index=int(ref.get("index", 0)),
            kind=data.get("kind"),
            name=metadata.get("name"),
            namespace=metadata.get("namespace"),
        ),
    )


def test_document_path_renders_keys_indices_and_quoted_keys() -> None:
    path = DocumentPath(("spec", "containers", 0, "image"))
    assert str(path) == "spec.containers[0].image"

    labels = DocumentPath(("metadata", "labels", "app.kubernetes.io/name"))
    assert str(labels) == 'metadata.labels["app.kubernetes.io/name"]'
    assert str(ROOT) == ""


@pytest.mark.parametrize(
    "text",
    [
        "spec.containers[0].image",
        'metadata.labels["app.kubernetes.io/name"]',
        "spec.template.spec.initContainers[12].ports[3].hostPort",
        "",
    ],
)
def test_document_path_parse_is_inverse_of_str(text: str) -> None:
    assert str(DocumentPath.parse(text)) == text


def test_document_path_parse_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        DocumentPath.parse("spec..containers")


def test_document_path_sorts_indices_numerically() -> None:
    paths = [
        DocumentPath(("spec", "containers", 10)),
        DocumentPath(("spec", "containers", 2)),
        DocumentPath(("spec", "containers", 1)),
    ]

    ordered = sorted(paths, key=DocumentPath.sort_key)

    assert [str(path) for path in ordered] == [
        "spec.containers[1]",
        "spec.containers[2]",
        "spec.containers[10]",
    ]


def test_document_path_child_and_join() -> None:
    path = ROOT / "spec" / "containers"
    assert path.child(0) == DocumentPath(("spec", "containers", 0))
    assert path.join(0, "image") == DocumentPath(("spec", "containers", 0, "image"))


def test_mapping_node_rejects_duplicate_keys() -> None:
    with pytest.raises(ValueError):
        MappingNode((("a", ScalarNode(1)), ("a", ScalarNode(2))))


def test_node_equality_ignores_positions() -> None:
    first = MappingNode((("a", ScalarNode(1, line=1, column=1)),), line=1, column=1)
    second = MappingNode((("a", ScalarNode(1, line=7, column=3)),), line=7, column=1)

    assert first == second


def test_build_node_round_trips_plain_data() -> None:
    data = {"a": [1, "two", None, True], "b": {"c": 1.5}}

    node = build_node(data)

    assert isinstance(node, MappingNode)
    assert isinstance(node.get("a"), SequenceNode)
    assert node.to_python() == data


def test_document_get_navigates_and_returns_none_for_missing_steps() -> None:
    document = make_document(
        {
            "kind": "Pod",
            "metadata": {"name": "web"},
            "spec": {"containers": [{"name": "app", "image": "nginx:1.25"}]},
        }
    )

    assert document.get_scalar("spec.containers[0].image") == "nginx:1.25"
    assert document.get("spec.containers[1]") is None
    assert document.get("spec.containers.image") is None
    assert document.get("metadata.labels") is None
    assert document.get_scalar("spec.containers", default="n/a") == "n/a"
    assert document.get(ROOT) is document.root


def test_document_find_is_preorder_and_reiterable() -> None:
    document = make_document(
        {
            "kind": "Pod",
            "spec": {
                "containers": [
                    {"name": "a", "image": "one"},
                    {"name": "b", "image": "two"},
                ]
            },
        }
    )

    images = document.find(lambda path, node: bool(path.parts) and path.parts[-1] == "image")

    assert [str(path) for path, _ in images] == [
        "spec.containers[0].image",
        "spec.containers[1].image",
    ]
    assert list(images) == list(images)

    everything = document.find(lambda path, node: True)
    assert everything[0] == (ROOT, document.root)
    assert [str(path) for path, _ in everything[:3]] == ["", "kind", "spec"]


def test_document_labels_are_stringified() -> None:
    document = make_document(
        {"kind": "Pod", "metadata": {"labels": {"app": "web", "canary": True, "tier": 3}}}
    )

    assert document.labels == {"app": "web", "canary": "true", "tier": "3"}
    assert string_map(None) == {}


def test_document_ref_display_and_location() -> None:
    ref = DocumentRef(source="deploy.yaml", index=2, kind="Deployment", name="web")

    assert ref.display_name == "Deployment/-/web"
    assert ref.location == "deploy.yaml#2"
    assert not ref.is_global
    assert GLOBAL_REF.is_global
    assert GLOBAL_REF.display_name == "(global)"
    assert sorted([GLOBAL_REF, ref], key=DocumentRef.sort_key) == [ref, GLOBAL_REF]


def test_document_set_indexes_by_kind_namespace_and_identity() -> None:
    deployment = make_document(
        {"kind": "Deployment", "metadata": {"name": "web", "namespace": "shop"}}, index=0
    )
    service = make_document({"kind": "Service", "metadata": {"name": "web"}}, index=1)

    documents = DocumentSet.of([deployment, service])

    assert documents.of_kind("Deployment") == [deployment]
    assert documents.in_namespace("default") == [service]
    assert documents.in_namespace("shop", kind="Service") == []
    assert documents.lookup("Deployment", "shop", "web") is deployment
    assert documents.lookup("Deployment", "default", "web") is None
    assert len(documents) == 2
