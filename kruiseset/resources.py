"""Updating compute resource requests and limits of workload containers."""

from __future__ import annotations

import copy
import fnmatch
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from kruiseset.workloads import (
    AggregateError,
    DryRun,
    LOCAL_SERVER_DRY_RUN_MESSAGE,
    Manifest,
    object_name,
    update_pod_spec_for_object,
)

Container = dict[str, Any]

_QUANTITY = re.compile(
    r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[KMGTPE]i|[numkMGTPE]|[eE][+-]?\d+)?$"
)
_QUANTITY_ERROR = (
    "quantities must match the regular expression "
    "'^([+-]?[0-9.]+)([eEinumkKMGTP]*[-+]?[0-9]*)$'"
)

# Kruise workloads that are rewritten whole rather than patched.
_KRUISE_WORKLOADS = frozenset(
    {
        ("apps.kruise.io/v1alpha1", "CloneSet"),
        ("apps.kruise.io/v1beta1", "StatefulSet"),
    }
)


@dataclass
class ResourceRequirements:
    """Limits and requests, each a mapping of resource name to quantity."""

    limits: dict[str, str] = field(default_factory=dict)
    requests: dict[str, str] = field(default_factory=dict)


def parse_resource_list(spec: str) -> dict[str, str]:
    """Parse ``cpu=200m,memory=512Mi`` into a resource mapping."""
    if not spec:
        return {}
    result: dict[str, str] = {}
    for statement in spec.split(","):
        parts = statement.split("=")
        if len(parts) != 2:
            raise ValueError(
                f"Invalid argument syntax {statement}, expected <resource>=<value>"
            )
        name, quantity = parts
        if not _QUANTITY.match(quantity):
            raise ValueError(_QUANTITY_ERROR)
        result[name] = quantity
    return result


def handle_resource_requirements(limits: str, requests: str) -> ResourceRequirements:
    """Build requirements from the ``--limits`` and ``--requests`` strings."""
    return ResourceRequirements(
        limits=parse_resource_list(limits),
        requests=parse_resource_list(requests),
    )


def select_containers(
    containers: list[Container], pattern: str
) -> tuple[list[Container], list[Container]]:
    """Split containers into those whose name matches the glob ``pattern`` and the rest."""
    selected: list[Container] = []
    rest: list[Container] = []
    for container in containers:
        if fnmatch.fnmatchcase(str(container.get("name", "")), pattern):
            selected.append(container)
        else:
            rest.append(container)
    return selected, rest


@dataclass
class ResourcesOptions:
    """What ``set resources`` should change."""

    resources: list[str] = field(default_factory=list)
    filenames: list[str] = field(default_factory=list)
    container_selector: str = "*"
    all: bool = False
    selector: str = ""
    local: bool = False
    dry_run: DryRun = DryRun.NONE
    limits: str = ""
    requests: str = ""
    requirements: Optional[ResourceRequirements] = None

    def validate(self) -> None:
        """Check the options and parse the requested quantities."""
        if self.local and self.dry_run is DryRun.SERVER:
            raise ValueError(LOCAL_SERVER_DRY_RUN_MESSAGE)
        if self.all and self.selector:
            raise ValueError("cannot set --all and --selector at the same time")
        if not self.limits and not self.requests:
            raise ValueError(
                "you must specify an update to requests or limits "
                "(in the form of --requests/--limits)"
            )
        self.requirements = handle_resource_requirements(self.limits, self.requests)

    def run(self, objects: list[Manifest]) -> list[Manifest]:
        """Update resources in place and return the objects to report.

        When the first object is a Kruise CloneSet or StatefulSet, only that
        object is handled. Otherwise problems are gathered over all objects
        and raised as AggregateError, with the changed objects in ``partial``.
        """
        if not objects:
            return []
        requirements = self.requirements or handle_resource_requirements(
            self.limits, self.requests
        )
        first = objects[0]
        if (first.get("apiVersion"), first.get("kind")) in _KRUISE_WORKLOADS:
            return self._run_kruise(first, requirements)
        return self._run_patches(objects, requirements)

    def _run_kruise(
        self, obj: Manifest, requirements: ResourceRequirements
    ) -> list[Manifest]:
        containers = (
            (((obj.get("spec") or {}).get("template") or {}).get("spec") or {}).get(
                "containers"
            )
            or []
        )
        if not self._update_containers(containers, requirements):
            return []
        return [obj]

    def _run_patches(
        self, objects: list[Manifest], requirements: ResourceRequirements
    ) -> list[Manifest]:
        errors: list[Exception] = []
        changed: list[Manifest] = []
        for obj in objects:
            before = copy.deepcopy(obj)

            def apply(spec: Optional[dict]) -> None:
                if spec is None:
                    raise ValueError(
                        f"object of kind {obj.get('kind')!r} does not contain a pod template"
                    )
                containers = spec.get("containers") or []
                if not self._update_containers(containers, requirements):
                    errors.append(
                        ValueError(
                            f"error: unable to find container named {self.container_selector}"
                        )
                    )

            try:
                update_pod_spec_for_object(obj, apply)
            except ValueError as exc:
                errors.append(ValueError(f"error: {object_name(obj)} {exc}"))
                continue
            if obj != before:
                changed.append(obj)
        if errors:
            raise AggregateError(errors, partial=changed)
        return changed

    def _update_containers(
        self, containers: list[Container], requirements: ResourceRequirements
    ) -> bool:
        selected, _ = select_containers(containers, self.container_selector)
        for container in selected:
            resources = container.get("resources")
            if not isinstance(resources, dict):
                resources = {}
                container["resources"] = resources
            for key, flag, values in (
                ("limits", self.limits, requirements.limits),
                ("requests", self.requests, requirements.requests),
            ):
                if flag and not resources.get(key):
                    resources[key] = {}
                if values:
                    resources.setdefault(key, {}).update(values)
        return bool(selected)