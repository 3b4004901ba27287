"""Updating container images of workloads."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Optional

from kruiseset.workloads import (
    AggregateError,
    DryRun,
    LOCAL_SERVER_DRY_RUN_MESSAGE,
    Manifest,
    object_name,
    update_pod_spec_for_object,
)

WILDCARD = "*"

ImageResolver = Callable[[str], str]


def resolve_image(image: str) -> str:
    """Return the image name unchanged."""
    return image


def set_image(containers: list[dict[str, Any]], container_name: str, image: str) -> bool:
    """Set ``image`` on every container named ``container_name`` (or all for ``*``)."""
    found = False
    for container in containers:
        if container.get("name") == container_name or container_name == WILDCARD:
            container["image"] = image
            found = True
    return found


def _is_pair(arg: str) -> bool:
    return ("=" in arg and not arg.startswith("=")) or (arg.endswith("-") and arg != "-")


def parse_pairs(args: list[str], pair_type: str) -> dict[str, str]:
    """Parse ``key=value`` arguments into a mapping."""
    pairs: dict[str, str] = {}
    invalid: list[str] = []
    for arg in args:
        key, sep, value = arg.partition("=")
        if sep and key:
            pairs[key] = value
        else:
            invalid.append(arg)
    if invalid:
        raise ValueError(f"invalid {pair_type} format: {', '.join(invalid)}")
    return pairs


def get_resources_and_images(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split arguments into resources and a container-to-image mapping."""
    resources: list[str] = []
    pair_args: list[str] = []
    for arg in args:
        if _is_pair(arg):
            pair_args.append(arg)
        elif pair_args:
            raise ValueError(f"all resources must be specified before image changes: {arg}")
        else:
            resources.append(arg)
    return resources, parse_pairs(pair_args, "image")


def has_wildcard_key(container_images: dict[str, str]) -> bool:
    """Tell whether the mapping addresses all containers through ``*``."""
    return WILDCARD in container_images


@dataclass
class ImageOptions:
    """What ``set image`` should change."""

    resources: list[str] = field(default_factory=list)
    container_images: dict[str, str] = field(default_factory=dict)
    filenames: list[str] = field(default_factory=list)
    kustomize: str = ""
    all: bool = False
    selector: str = ""
    local: bool = False
    dry_run: DryRun = DryRun.NONE
    resolver: ImageResolver = resolve_image

    def validate(self) -> None:
        """Raise AggregateError if the options cannot be carried out."""
        errors: list[str] = []
        if self.all and self.selector:
            errors.append("cannot set --all and --selector at the same time")
        if not self.resources and not self.filenames and not self.kustomize:
            errors.append(
                "one or more resources must be specified as <resource> <name> "
                "or <resource>/<name>"
            )
        if not self.container_images:
            errors.append("at least one image update is required")
        elif len(self.container_images) > 1 and has_wildcard_key(self.container_images):
            errors.append(
                "all containers are already specified by *, but saw more than one "
                "container_name=container_image pairs"
            )
        if self.local and self.dry_run is DryRun.SERVER:
            errors.append(LOCAL_SERVER_DRY_RUN_MESSAGE)
        if errors:
            raise AggregateError(errors)

    def run(self, objects: list[Manifest]) -> list[Manifest]:
        """Update images in place and return the objects that changed.

        Problems are gathered and raised together as AggregateError once all
        objects were seen; the changed objects are then in its ``partial``.
        """
        errors: list[Exception] = []
        changed: list[Manifest] = []
        for obj in objects:
            before = copy.deepcopy(obj)
            try:
                update_pod_spec_for_object(obj, partial(self._apply, obj, errors))
            except ValueError as exc:
                errors.append(ValueError(f"error: {object_name(obj)} {exc}"))
                continue
            if obj != before:
                changed.append(obj)
        if errors:
            raise AggregateError(errors, partial=changed)
        return changed

    def _apply(self, obj: Manifest, errors: list[Exception], spec: Optional[dict]) -> None:
        target = spec if spec is not None else obj.setdefault("spec", {})
        for name, image in self.container_images.items():
            try:
                resolved = self.resolver(image)
            except Exception as exc:  # resolver failures are reported, not fatal
                errors.append(
                    ValueError(
                        f'error: unable to resolve image "{image}" for container "{name}": {exc}'
                    )
                )
                if name == WILDCARD:
                    break
                continue
            init_found = set_image(target.get("initContainers") or [], name, resolved)
            found = set_image(target.get("containers") or [], name, resolved)
            if not found and not init_found:
                errors.append(ValueError(f'error: unable to find container named "{name}"'))