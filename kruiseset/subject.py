"""Adding users, groups and service accounts to role bindings."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable

from kruiseset.workloads import (
    AggregateError,
    DryRun,
    LOCAL_SERVER_DRY_RUN_MESSAGE,
    Manifest,
    object_name,
)

USER_KIND = "User"
GROUP_KIND = "Group"
SERVICE_ACCOUNT_KIND = "ServiceAccount"
RBAC_GROUP_NAME = "rbac.authorization.k8s.io"

_BINDING_KINDS = frozenset({"RoleBinding", "ClusterRoleBinding"})
_SA_FORMAT_MESSAGE = "serviceaccount must be <namespace>:<name>"


@dataclass(frozen=True)
class Subject:
    """One subject of a role binding."""

    kind: str
    name: str
    api_group: str = ""
    namespace: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subject":
        """Read a subject from its manifest form."""
        return cls(
            kind=str(data.get("kind", "")),
            name=str(data.get("name", "")),
            api_group=str(data.get("apiGroup", "")),
            namespace=str(data.get("namespace", "")),
        )

    def to_dict(self) -> dict[str, str]:
        """Write the subject in manifest form, leaving out empty optional fields."""
        data = {"kind": self.kind}
        if self.api_group:
            data["apiGroup"] = self.api_group
        data["name"] = self.name
        if self.namespace:
            data["namespace"] = self.namespace
        return data


UpdateSubjects = Callable[[list[Subject], list[Subject]], tuple[bool, list[Subject]]]


def add_subjects(
    existings: list[Subject], targets: list[Subject]
) -> tuple[bool, list[Subject]]:
    """Append every target not already among ``existings``."""
    updated = list(existings)
    transformed = False
    for item in targets:
        if item not in existings:
            updated.append(item)
            transformed = True
    return transformed, updated


def update_subject_for_object(
    obj: Manifest, subjects: list[Subject], fn: UpdateSubjects
) -> bool:
    """Apply ``fn`` to the subjects of a binding in place; tell whether it changed."""
    if obj.get("kind") not in _BINDING_KINDS:
        raise ValueError(
            "setting subjects is only supported for RoleBinding/ClusterRoleBinding"
        )
    existing = [Subject.from_dict(d) for d in obj.get("subjects") or []]
    transformed, result = fn(existing, subjects)
    if transformed or "subjects" in obj:
        obj["subjects"] = [s.to_dict() for s in result]
    return transformed


@dataclass
class SubjectOptions:
    """What ``set subject`` should change."""

    users: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)
    service_accounts: list[str] = field(default_factory=list)
    namespace: str = ""
    resources: list[str] = field(default_factory=list)
    all: bool = False
    selector: str = ""
    local: bool = False
    dry_run: DryRun = DryRun.NONE

    def validate(self, objects: list[Manifest]) -> None:
        """Raise ValueError if the options cannot be applied to ``objects``."""
        if self.local and self.dry_run is DryRun.SERVER:
            raise ValueError(LOCAL_SERVER_DRY_RUN_MESSAGE)
        if self.all and self.selector:
            raise ValueError("cannot set --all and --selector at the same time")
        if not self.users and not self.groups and not self.service_accounts:
            raise ValueError(
                "you must specify at least one value of user, group or serviceaccount"
            )
        has_cluster_binding = any(o.get("kind") == "ClusterRoleBinding" for o in objects)
        for sa in self.service_accounts:
            tokens = sa.split(":")
            if len(tokens) != 2 or not tokens[1]:
                raise ValueError(_SA_FORMAT_MESSAGE)
            if has_cluster_binding and not tokens[0]:
                raise ValueError(f"{_SA_FORMAT_MESSAGE}, namespace must be specified")

    def build_subjects(self) -> list[Subject]:
        """Turn the users, groups and service accounts into sorted, unique subjects."""
        subjects = [
            Subject(kind=USER_KIND, api_group=RBAC_GROUP_NAME, name=user)
            for user in sorted(set(self.users))
        ]
        subjects += [
            Subject(kind=GROUP_KIND, api_group=RBAC_GROUP_NAME, name=group)
            for group in sorted(set(self.groups))
        ]
        for sa in sorted(set(self.service_accounts)):
            namespace, _, name = sa.partition(":")
            subjects.append(
                Subject(
                    kind=SERVICE_ACCOUNT_KIND,
                    namespace=namespace or self.namespace,
                    name=name,
                )
            )
        return subjects

    def run(
        self, objects: list[Manifest], fn: UpdateSubjects = add_subjects
    ) -> list[Manifest]:
        """Update the bindings in place and return those that changed.

        Problems are raised together as AggregateError after all objects were
        seen, with the changed objects in its ``partial``.
        """
        subjects = self.build_subjects()
        errors: list[Exception] = []
        changed: list[Manifest] = []
        for obj in objects:
            original = copy.deepcopy(obj)
            try:
                transformed = update_subject_for_object(obj, subjects, fn)
            except ValueError as exc:
                errors.append(ValueError(f"error: {object_name(obj)} {exc}"))
                continue
            if transformed and obj != original:
                changed.append(obj)
        if errors:
            raise AggregateError(errors, partial=changed)
        return changed