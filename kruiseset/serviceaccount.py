"""Setting the service account of pod template resources."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Optional

from kruiseset.workloads import (
    AggregateError,
    DryRun,
    Manifest,
    PodSpec,
    check_local_dry_run,
    object_name,
    update_pod_spec_for_object,
)

SERVICE_ACCOUNT_MISSING_MESSAGE = "serviceaccount is required"


@dataclass
class ServiceAccountOptions:
    """What ``set serviceaccount`` should change."""

    service_account_name: str
    resources: list[str] = field(default_factory=list)
    local: bool = False
    dry_run: DryRun = DryRun.NONE

    @classmethod
    def from_args(
        cls, args: list[str], local: bool = False, dry_run: DryRun = DryRun.NONE
    ) -> "ServiceAccountOptions":
        """Build options from ``[RESOURCE ...] SERVICE_ACCOUNT`` arguments."""
        check_local_dry_run(local, dry_run)
        if not args:
            raise ValueError(SERVICE_ACCOUNT_MISSING_MESSAGE)
        return cls(
            service_account_name=args[-1],
            resources=list(args[:-1]),
            local=local,
            dry_run=dry_run,
        )

    def run(self, objects: list[Manifest]) -> list[Manifest]:
        """Set the service account in place and return every object handled.

        Objects without a pod template are reported together as an
        AggregateError once all objects were seen; the handled objects are
        then in its ``partial``.
        """
        errors: list[Exception] = []
        handled: list[Manifest] = []
        for obj in objects:
            original = copy.deepcopy(obj)
            try:
                update_pod_spec_for_object(obj, self._apply_to(obj))
            except ValueError as exc:
                obj.clear()
                obj.update(original)
                errors.append(ValueError(f"error: {object_name(obj)} {exc}"))
                continue
            handled.append(obj)
        if errors:
            raise AggregateError(errors, partial=handled)
        return handled

    def _apply_to(self, obj: Manifest):
        def apply(spec: Optional[PodSpec]) -> None:
            if spec is None:
                raise ValueError(
                    f"object of kind {obj.get('kind')!r} does not contain a pod template"
                )
            spec["serviceAccountName"] = self.service_account_name

        return apply