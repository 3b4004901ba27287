"""Locating pod templates inside workload manifests, and shared error types."""

from __future__ import annotations

import enum
from typing import Any, Callable, Iterable, Optional

Manifest = dict[str, Any]
PodSpec = dict[str, Any]

SIDECAR_SET_KIND = "SidecarSet"

_TEMPLATE_KINDS = frozenset(
    {
        "ReplicationController",
        "Deployment",
        "DaemonSet",
        "ReplicaSet",
        "StatefulSet",
        "Job",
        "CloneSet",
    }
)

LOCAL_SERVER_DRY_RUN_MESSAGE = (
    "cannot specify --local and --dry-run=server - did you mean --dry-run=client?"
)


class DryRun(enum.Enum):
    """How far a change is carried out."""

    NONE = "none"
    CLIENT = "client"
    SERVER = "server"


class AggregateError(Exception):
    """Several errors reported together.

    A single distinct message is shown on its own; several are shown as
    ``[first, second]``. ``partial`` holds whatever results were produced
    before the errors were collected.
    """

    def __init__(self, errors: Iterable[Exception | str], partial: Optional[list] = None):
        self.errors = [e if isinstance(e, Exception) else ValueError(e) for e in errors]
        if not self.errors:
            raise ValueError("an aggregate error needs at least one error")
        self.partial = list(partial or [])
        messages = list(dict.fromkeys(str(e) for e in self.errors))
        text = messages[0] if len(messages) == 1 else "[" + ", ".join(messages) + "]"
        super().__init__(text)


def _nested(obj: Manifest, *keys: str) -> dict[str, Any]:
    """Walk down ``keys``, creating empty mappings where they are missing."""
    node = obj
    for key in keys:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    return node


def pod_specs_for_object(obj: Manifest) -> list[PodSpec]:
    """Return the pod specs held by ``obj``; a SidecarSet holds none."""
    kind = obj.get("kind")
    if kind == "Pod":
        return [_nested(obj, "spec")]
    if kind in _TEMPLATE_KINDS:
        return [_nested(obj, "spec", "template", "spec")]
    if kind == "CronJob":
        return [_nested(obj, "spec", "jobTemplate", "spec", "template", "spec")]
    if kind == SIDECAR_SET_KIND:
        return []
    raise ValueError(f"object of kind {kind!r} does not contain a pod template")


def update_pod_spec_for_object(
    obj: Manifest, fn: Callable[[Optional[PodSpec]], None]
) -> None:
    """Call ``fn`` on every pod spec of ``obj``.

    A SidecarSet has no pod template, so ``fn`` is called with ``None``
    and must work on the object itself.
    """
    if obj.get("kind") == SIDECAR_SET_KIND:
        fn(None)
        return
    for spec in pod_specs_for_object(obj):
        fn(spec)


def object_name(obj: Manifest) -> str:
    """Name an object as ``kind[.group]/name``."""
    kind = str(obj.get("kind", "")).lower()
    api_version = str(obj.get("apiVersion", ""))
    group = api_version.split("/", 1)[0] if "/" in api_version else ""
    name = (obj.get("metadata") or {}).get("name", "")
    prefix = f"{kind}.{group}" if group else kind
    return f"{prefix}/{name}"


def check_local_dry_run(local: bool, dry_run: DryRun) -> None:
    """Reject a local run combined with a server-side dry run."""
    if local and dry_run is DryRun.SERVER:
        raise ValueError(LOCAL_SERVER_DRY_RUN_MESSAGE)