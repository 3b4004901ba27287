"""Command line entry point: update workload manifests read from files."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Iterable, Iterator, Optional

import yaml

from kruiseset.image import ImageOptions, get_resources_and_images
from kruiseset.resources import ResourcesOptions
from kruiseset.selector import SelectorOptions, get_resources_and_selector
from kruiseset.serviceaccount import ServiceAccountOptions
from kruiseset.subject import SubjectOptions
from kruiseset.workloads import AggregateError, DryRun, Manifest, object_name

OUTPUT_FORMATS = ("", "yaml", "json", "name")
MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")

LOCAL_RESOURCE_MESSAGE = (
    "you must specify resources by --filename when --local is set.\n"
    "Example resource specifications include:\n"
    "   '-f rsrc.yaml'\n"
    "   '--filename=rsrc.json'"
)
RESOURCE_MISSING_MESSAGE = (
    "You must provide one or more resources by argument or filename.\n"
    "Example resource specifications include:\n"
    "   '-f rsrc.yaml'\n"
    "   '--filename=rsrc.json'\n"
    "   '<resource> <name>'\n"
    "   '<resource>'"
)


def _read_sources(path: str) -> Iterator[tuple[str, str]]:
    if path == "-":
        yield sys.stdin.read(), "<stdin>"
        return
    location = Path(path)
    if location.is_dir():
        for child in sorted(location.iterdir()):
            if child.is_file() and child.suffix in MANIFEST_SUFFIXES:
                yield child.read_text(encoding="utf-8"), str(child)
        return
    yield location.read_text(encoding="utf-8"), str(location)


def _documents(text: str, source: str) -> Iterator[Manifest]:
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ValueError(f"{source}: {exc}") from exc
    for document in documents:
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ValueError(f"{source}: expected a mapping, got {type(document).__name__}")
        items = document.get("items")
        if str(document.get("kind", "")).endswith("List") and isinstance(items, list):
            for item in items:
                if not isinstance(item, dict):
                    raise ValueError(f"{source}: list items must be mappings")
                yield item
        else:
            yield document


def load_manifests(paths: Iterable[str]) -> list[Manifest]:
    """Read every object from files, directories or ``-`` (stdin), flattening lists."""
    objects: list[Manifest] = []
    for path in paths:
        for text, source in _read_sources(path):
            objects.extend(_documents(text, source))
    return objects


def dump_manifests(objects: list[Manifest], output: str) -> str:
    """Render objects as ``yaml``, ``json`` or ``name`` output."""
    if output == "name":
        return "".join(f"{object_name(obj)}\n" for obj in objects)
    if output == "yaml":
        if not objects:
            return ""
        return yaml.safe_dump_all(objects, sort_keys=False, default_flow_style=False)
    if output == "json":
        if not objects:
            return ""
        document = (
            objects[0]
            if len(objects) == 1
            else {"apiVersion": "v1", "kind": "List", "items": objects}
        )
        return json.dumps(document, indent=4) + "\n"
    raise ValueError(f"unable to match a printer suitable for the output format {output!r}")


def _render(objects: list[Manifest], args: argparse.Namespace) -> str:
    if args.output:
        return dump_manifests(objects, args.output)
    suffix = " (dry run)" if DryRun(args.dry_run) is DryRun.CLIENT else ""
    return "".join(f"{object_name(obj)} {args.message}{suffix}\n" for obj in objects)


def _require_files(args: argparse.Namespace, resources: list[str]) -> list[Manifest]:
    if resources:
        raise ValueError(LOCAL_RESOURCE_MESSAGE)
    if not args.filename:
        raise ValueError(RESOURCE_MISSING_MESSAGE)
    return load_manifests(args.filename)


def _run_image(args: argparse.Namespace) -> list[Manifest]:
    resources, images = get_resources_and_images(args.args)
    objects = _require_files(args, resources)
    options = ImageOptions(
        resources=resources,
        container_images=images,
        filenames=list(args.filename),
        all=args.all,
        selector=args.selector,
        local=True,
        dry_run=DryRun(args.dry_run),
    )
    options.validate()
    return options.run(objects)


def _run_resources(args: argparse.Namespace) -> list[Manifest]:
    objects = _require_files(args, args.args)
    options = ResourcesOptions(
        filenames=list(args.filename),
        container_selector=args.containers,
        all=args.all,
        selector=args.selector,
        local=True,
        dry_run=DryRun(args.dry_run),
        limits=args.limits,
        requests=args.requests,
    )
    options.validate()
    return options.run(objects)


def _run_selector(args: argparse.Namespace) -> list[Manifest]:
    resources, selector = get_resources_and_selector(args.args)
    options = SelectorOptions(
        resources=resources, selector=selector, resource_version=args.resource_version
    )
    objects = _require_files(args, resources)
    options.validate()
    return options.run(objects)


def _run_serviceaccount(args: argparse.Namespace) -> list[Manifest]:
    options = ServiceAccountOptions.from_args(
        args.args, local=True, dry_run=DryRun(args.dry_run)
    )
    objects = _require_files(args, [])
    return options.run(objects)


def _run_subject(args: argparse.Namespace) -> list[Manifest]:
    objects = _require_files(args, args.args)
    options = SubjectOptions(
        users=list(args.user),
        groups=list(args.group),
        service_accounts=list(args.serviceaccount),
        namespace=args.namespace,
        all=args.all,
        selector=args.selector,
        local=True,
        dry_run=DryRun(args.dry_run),
    )
    options.validate(objects)
    return options.run(objects)


def _add_common(parser: argparse.ArgumentParser, selector: bool = True) -> None:
    parser.add_argument("args", nargs="*", help="resources and command arguments")
    parser.add_argument(
        "-f", "--filename", action="append", default=[],
        help="file, directory or '-' holding the objects to update",
    )
    parser.add_argument("-o", "--output", default="", choices=OUTPUT_FORMATS)
    parser.add_argument("--local", action="store_true", help="work on the given files only")
    parser.add_argument(
        "--dry-run", dest="dry_run", default=DryRun.NONE.value,
        choices=[d.value for d in DryRun],
    )
    parser.add_argument("--all", action="store_true", help="select all resources")
    if selector:
        parser.add_argument("-l", "--selector", default="", help="label query to filter on")
    else:
        parser.set_defaults(selector="")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kruiseset", description="Update fields of workload manifests."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    image = commands.add_parser("image", help="update image of a pod template")
    _add_common(image)
    image.set_defaults(handler=_run_image, message="image updated")

    resources = commands.add_parser(
        "resources", help="update resource requests/limits on objects with pod templates"
    )
    _add_common(resources)
    resources.add_argument("-c", "--containers", default="*")
    resources.add_argument("--limits", default="")
    resources.add_argument("--requests", default="")
    resources.set_defaults(handler=_run_resources, message="resource requirements updated")

    selector = commands.add_parser("selector", help="set the selector on a resource")
    _add_common(selector, selector=False)
    selector.add_argument("--resource-version", dest="resource_version", default="")
    selector.set_defaults(handler=_run_selector, message="selector updated")

    account = commands.add_parser(
        "serviceaccount", aliases=["sa"], help="update ServiceAccount of a resource"
    )
    _add_common(account, selector=False)
    account.set_defaults(handler=_run_serviceaccount, message="serviceaccount updated")

    subject = commands.add_parser(
        "subject", help="update User, Group or ServiceAccount in a RoleBinding"
    )
    _add_common(subject)
    subject.add_argument("--user", action="append", default=[])
    subject.add_argument("--group", action="append", default=[])
    subject.add_argument("--serviceaccount", action="append", default=[])
    subject.add_argument("-n", "--namespace", default="default")
    subject.set_defaults(handler=_run_subject, message="subjects updated")
    return parser


def _report(error: Exception) -> None:
    message = str(error)
    if not message.startswith("error: "):
        message = f"error: {message}"
    sys.stderr.write(message.rstrip("\n") + "\n")


def main(argv: Optional[list[str]] = None) -> int:
    """Run one ``set`` command; return the exit status."""
    args = _build_parser().parse_args(argv)
    try:
        objects = args.handler(args)
    except AggregateError as exc:
        sys.stdout.write(_render(exc.partial, args))
        _report(exc)
        return 1
    except (ValueError, OSError) as exc:
        _report(exc)
        return 1
    sys.stdout.write(_render(objects, args))
    return 0