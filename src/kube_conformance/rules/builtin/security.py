"""Pod and container security rules."""

from __future__ import annotations

from typing import List, Optional

from ...models import Category, Document, Finding, Severity
from ..base import (
    WORKLOAD_KINDS,
    SingleDocumentRule,
    container_name,
    describe,
    iter_containers,
    pod_spec_path,
)


class NonRootUser(SingleDocumentRule):
    """Containers must not be allowed to run as UID 0."""

    id = "SEC001"
    category = Category.SECURITY
    title = "Containers run as a non-root user"
    default_severity = Severity.ERROR
    kinds = WORKLOAD_KINDS

    def evaluate(self, document: Document) -> List[Finding]:
        spec_path = pod_spec_path(document)
        if spec_path is None:
            return []

        pod_non_root = document.get_scalar(spec_path.join("securityContext", "runAsNonRoot"))
        findings: List[Finding] = []
        for path, container in iter_containers(document):
            target = path.join("securityContext", "runAsNonRoot")
            if document.get_scalar(target) is True or pod_non_root is True:
                continue
            findings.append(
                self.finding(
                    document.ref,
                    target,
                    f"Container '{container_name(container)}' may run as root; set "
                    "securityContext.runAsNonRoot: true on the container or the pod.",
                )
            )
        return findings


class NoPrivilegedContainers(SingleDocumentRule):
    id = "SEC002"
    category = Category.SECURITY
    title = "Containers are not privileged"
    default_severity = Severity.ERROR
    kinds = WORKLOAD_KINDS

    def evaluate(self, document: Document) -> List[Finding]:
        findings: List[Finding] = []
        for path, container in iter_containers(document, include_init=True):
            target = path.join("securityContext", "privileged")
            if document.get_scalar(target) is True:
                findings.append(
                    self.finding(
                        document.ref,
                        target,
                        f"Container '{container_name(container)}' runs in privileged mode.",
                    )
                )
        return findings


class NoPrivilegeEscalation(SingleDocumentRule):
    id = "SEC003"
    category = Category.SECURITY
    title = "Privilege escalation is disabled"
    default_severity = Severity.WARNING
    kinds = WORKLOAD_KINDS

    def evaluate(self, document: Document) -> List[Finding]:
        findings: List[Finding] = []
        for path, container in iter_containers(document, include_init=True):
            target = path.join("securityContext", "allowPrivilegeEscalation")
            if document.get_scalar(target) is not False:
                findings.append(
                    self.finding(
                        document.ref,
                        target,
                        f"Container '{container_name(container)}' does not set "
                        "allowPrivilegeEscalation: false.",
                    )
                )
        return findings


class ReadOnlyRootFilesystem(SingleDocumentRule):
    id = "SEC004"
    category = Category.SECURITY
    title = "Root filesystem is read-only"
    default_severity = Severity.WARNING
    kinds = WORKLOAD_KINDS

    def evaluate(self, document: Document) -> List[Finding]:
        findings: List[Finding] = []
        for path, container in iter_containers(document, include_init=True):
            target = path.join("securityContext", "readOnlyRootFilesystem")
            if document.get_scalar(target) is not True:
                findings.append(
                    self.finding(
                        document.ref,
                        target,
                        f"Container '{container_name(container)}' has a writable root filesystem.",
                    )
                )
        return findings


class NoLatestTag(SingleDocumentRule):
    """Images must be pinned to an explicit tag other than ``latest``.

    Digest references (``image@sha256:...``) are always accepted.
    """

    id = "SEC005"
    category = Category.SECURITY
    title = "Images use a pinned tag"
    default_severity = Severity.ERROR
    kinds = WORKLOAD_KINDS

    def evaluate(self, document: Document) -> List[Finding]:
        findings: List[Finding] = []
        for path, container in iter_containers(document, include_init=True):
            target = path / "image"
            image = document.get_scalar(target)
            if not isinstance(image, str) or not image or "@" in image:
                continue

            tag = image_tag(image)
            if tag == "latest":
                message = f"Image '{image}' uses the mutable 'latest' tag."
            elif tag is None:
                message = f"Image '{image}' has no tag and resolves to 'latest'."
            else:
                continue
            findings.append(self.finding(document.ref, target, message))
        return findings


def image_tag(image: str) -> Optional[str]:
    """Return the tag of an image reference, ignoring registry ports and digests."""

    reference = image.split("@", 1)[0]
    last_segment = reference.rsplit("/", 1)[-1]
    if ":" not in last_segment:
        return None
    return last_segment.split(":", 1)[1]


class NoHostNamespaces(SingleDocumentRule):
    id = "SEC006"
    category = Category.SECURITY
    title = "Pods do not share host namespaces"
    default_severity = Severity.ERROR
    kinds = WORKLOAD_KINDS

    _FIELDS = ("hostNetwork", "hostPID", "hostIPC")

    def evaluate(self, document: Document) -> List[Finding]:
        spec_path = pod_spec_path(document)
        if spec_path is None:
            return []

        findings: List[Finding] = []
        for field_name in self._FIELDS:
            target = spec_path / field_name
            if document.get_scalar(target) is True:
                findings.append(
                    self.finding(
                        document.ref, target, f"{describe(document)} enables {field_name}."
                    )
                )
        return findings


RULES = (
    NonRootUser,
    NoPrivilegedContainers,
    NoPrivilegeEscalation,
    ReadOnlyRootFilesystem,
    NoLatestTag,
    NoHostNamespaces,
)
