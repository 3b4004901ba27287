# kruiseset

Edit Kubernetes and OpenKruise workload manifests offline: set container
images, compute resources, Service selectors, service accounts and
RoleBinding/ClusterRoleBinding subjects.

Pod templates are found in Pods, Deployments, StatefulSets, DaemonSets,
ReplicaSets, Jobs, CronJobs, ReplicationControllers and CloneSets (including
the Kruise StatefulSet and DaemonSet kinds). For a SidecarSet, `image` updates
the SidecarSet's own containers and init containers.

## Install

```
pip install .
```

## Command line

The `kruiseset` command reads manifests with `-f/--filename` (a file, a
directory whose `.yaml`, `.yml` and `.json` files are read in name order, or
`-` for standard input), applies the change and prints the result. Objects of a
`*List` kind are flattened into their items. `-f` may be given several times.

```
# Set the nginx container image
kruiseset image -f cloneset.yaml nginx=nginx:1.9.1 -o yaml

# Set every container's image
kruiseset image -f cloneset.yaml '*=nginx:1.9.1' -o name

# Set limits and requests on all containers
kruiseset resources -f cloneset.yaml --limits=cpu=200m,memory=512Mi --requests=cpu=100m -o yaml

# Set a Service selector
kruiseset selector -f service.yaml 'environment=qa' -o yaml

# Set the service account of a pod template (alias: sa)
kruiseset serviceaccount -f cloneset.yaml serviceaccount1 -o yaml

# Add subjects to a role binding
kruiseset subject -f rolebinding.yaml --user=user1 --group=group1 --serviceaccount=ns:sa1 -o yaml
```

Options shared by all commands:

- `-o/--output` — `yaml`, `json` or `name`. Without it each changed object is
  printed as `kind/name <message>`, with ` (dry run)` added for
  `--dry-run=client`.
- `--dry-run` — `none`, `client` or `server`; `server` together with `--local`
  is rejected.
- `--all`, and `-l/--selector` for `image`, `resources` and `subject`; giving
  both is rejected.
- `--local` — accepted; every command works on the given files only.

Command-specific options:

- `resources`: `-c/--containers` (glob on container names, default `*`),
  `--limits`, `--requests`.
- `selector`: `--resource-version` is written into each object's metadata.
- `subject`: `--user`, `--group`, `--serviceaccount=<namespace>:<name>`
  (each repeatable) and `-n/--namespace` (default `default`), used for service
  accounts given without a namespace.

Errors are written to standard error prefixed with `error: ` and the exit
status is 1; objects that were changed before the errors are still printed.

## Library

```python
from kruiseset.image import ImageOptions, get_resources_and_images
from kruiseset.cli import load_manifests, dump_manifests

objects = load_manifests(["cloneset.yaml"])
resources, images = get_resources_and_images(["nginx=nginx:1.9.1"])
options = ImageOptions(container_images=images, filenames=["cloneset.yaml"], local=True)
options.validate()
changed = options.run(objects)
print(dump_manifests(changed, "yaml"))
```

Modules:

- `kruiseset.image` — `ImageOptions`, `set_image`, `parse_pairs`,
  `get_resources_and_images`, `has_wildcard_key`, `resolve_image`.
- `kruiseset.resources` — `ResourcesOptions`, `ResourceRequirements`,
  `parse_resource_list`, `handle_resource_requirements`, `select_containers`.
- `kruiseset.selector` — `SelectorOptions`, `LabelSelector`,
  `LabelSelectorRequirement`, `parse_label_selector`,
  `update_selector_for_object`, `get_resources_and_selector`.
- `kruiseset.serviceaccount` — `ServiceAccountOptions` (see `from_args`).
- `kruiseset.subject` — `Subject`, `SubjectOptions`, `add_subjects`,
  `update_subject_for_object`.
- `kruiseset.workloads` — `pod_specs_for_object`, `update_pod_spec_for_object`,
  `object_name`, `check_local_dry_run`, `DryRun`, `AggregateError`.
- `kruiseset.cli` — `load_manifests`, `dump_manifests`, `main`.

Objects are plain dictionaries and are changed in place; `run` returns the
objects to report. Per-object problems are collected and raised together as
`kruiseset.workloads.AggregateError`, whose `partial` holds the objects changed
so far. `ImageOptions.validate` also raises `AggregateError`; the other
validations raise `ValueError`.

## What it does not do

kruiseset never contacts a cluster: it does not fetch objects by
`<resource> <name>`, patch or replace them on a server, or record change
history. Resource arguments on the command line are rejected; objects must be
given with `-f`. For `resources`, when the first object is a Kruise CloneSet or
StatefulSet, only that object is updated.

## Tests

```
pip install .[test]
pytest
```