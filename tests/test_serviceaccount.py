import pytest

from kruiseset.serviceaccount import ServiceAccountOptions
from kruiseset.workloads import AggregateError, DryRun

SERVICE_ACCOUNT = "serviceaccount1"


def _template(kind, api_version, name="nginx", with_containers=True):
    obj = {"apiVersion": api_version, "kind": kind, "metadata": {"name": name}}
    if with_containers:
        obj["spec"] = {
            "template": {"spec": {"containers": [{"name": "nginx", "image": "nginx"}]}}
        }
    return obj


LOCAL_INPUTS = [
    _template("ReplicationController", "v1", "frontend"),
    _template("DaemonSet", "extensions/v1beta1", "prometheus-node-exporter"),
    _template("Deployment", "extensions/v1beta1", "redis-slave"),
    _template("Job", "batch/v1", "pi"),
    _template("Deployment", "extensions/v1beta1", "nginx-deployment"),
]


@pytest.mark.parametrize("manifest", LOCAL_INPUTS, ids=lambda m: m["kind"])
def test_set_service_account_local(manifest):
    opts = ServiceAccountOptions.from_args([SERVICE_ACCOUNT], local=True)
    result = opts.run([manifest])
    assert result == [manifest]
    assert manifest["spec"]["template"]["spec"]["serviceAccountName"] == SERVICE_ACCOUNT


def test_set_service_account_multi_local():
    from kruiseset.workloads import object_name

    objects = [
        _template("ReplicationController", "v1", "first-rc"),
        _template("ReplicationController", "v1", "second-rc"),
    ]
    opts = ServiceAccountOptions.from_args([SERVICE_ACCOUNT], local=True)
    result = opts.run(objects)
    names = "".join(object_name(o) + "\n" for o in result)
    assert names == "replicationcontroller/first-rc\nreplicationcontroller/second-rc\n"


REMOTE_INPUTS = [
    (_template("ReplicaSet", "extensions/v1beta1", with_containers=False),
     ["replicaset", "nginx", SERVICE_ACCOUNT]),
    (_template("ReplicaSet", "apps/v1beta2"), ["replicaset", "nginx", SERVICE_ACCOUNT]),
    (_template("ReplicaSet", "apps/v1"), ["replicaset", "nginx", SERVICE_ACCOUNT]),
    (_template("DaemonSet", "extensions/v1beta1", with_containers=False),
     ["daemonset", "nginx", SERVICE_ACCOUNT]),
    (_template("DaemonSet", "apps/v1beta2", with_containers=False),
     ["daemonset", "nginx", SERVICE_ACCOUNT]),
    (_template("DaemonSet", "apps/v1", with_containers=False),
     ["daemonset", "nginx", SERVICE_ACCOUNT]),
    (_template("Deployment", "extensions/v1beta1", with_containers=False),
     ["deployment", "nginx", SERVICE_ACCOUNT]),
    (_template("Deployment", "apps/v1beta1", with_containers=False),
     ["deployment", "nginx", SERVICE_ACCOUNT]),
    (_template("Deployment", "apps/v1beta2", with_containers=False),
     ["deployment", "nginx", SERVICE_ACCOUNT]),
    (_template("Deployment", "apps/v1"), ["deployment", "nginx", SERVICE_ACCOUNT]),
    (_template("StatefulSet", "apps/v1beta1", with_containers=False),
     ["statefulset", "nginx", SERVICE_ACCOUNT]),
    (_template("StatefulSet", "apps/v1beta2", with_containers=False),
     ["statefulset", "nginx", SERVICE_ACCOUNT]),
    (_template("StatefulSet", "apps/v1"), ["statefulset", "nginx", SERVICE_ACCOUNT]),
    (_template("Job", "batch/v1", with_containers=False), ["job", "nginx", SERVICE_ACCOUNT]),
    (_template("ReplicationController", "v1", with_containers=False),
     ["replicationcontroller", "nginx", SERVICE_ACCOUNT]),
]


@pytest.mark.parametrize("manifest,args", REMOTE_INPUTS)
def test_set_service_account_remote(manifest, args):
    opts = ServiceAccountOptions.from_args(args)
    assert opts.resources == args[:2]
    assert opts.service_account_name == SERVICE_ACCOUNT
    opts.run([manifest])
    assert manifest["spec"]["template"]["spec"]["serviceAccountName"] == SERVICE_ACCOUNT


def test_service_account_missing():
    with pytest.raises(ValueError, match="^serviceaccount is required$"):
        ServiceAccountOptions.from_args([])


def test_local_with_server_dry_run_rejected():
    with pytest.raises(ValueError, match="did you mean --dry-run=client"):
        ServiceAccountOptions.from_args([SERVICE_ACCOUNT], local=True, dry_run=DryRun.SERVER)


def test_cronjob_service_account():
    cronjob = {
        "apiVersion": "batch/v1",
        "kind": "CronJob",
        "metadata": {"name": "hello"},
        "spec": {"jobTemplate": {"spec": {"template": {"spec": {"containers": []}}}}},
    }
    ServiceAccountOptions.from_args(["cronjob", "hello", "builder"]).run([cronjob])
    spec = cronjob["spec"]["jobTemplate"]["spec"]["template"]["spec"]
    assert spec["serviceAccountName"] == "builder"


def test_unsupported_object_reported_and_others_handled():
    config_map = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "cfg"}}
    deployment = _template("Deployment", "apps/v1", "web")
    opts = ServiceAccountOptions.from_args([SERVICE_ACCOUNT])
    with pytest.raises(AggregateError) as info:
        opts.run([config_map, deployment])
    assert str(info.value).startswith("error: configmap/cfg ")
    assert info.value.partial == [deployment]
    assert config_map == {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "cfg"}}


def test_sidecarset_has_no_pod_template():
    sidecar = {
        "apiVersion": "apps.kruise.io/v1alpha1",
        "kind": "SidecarSet",
        "metadata": {"name": "side"},
        "spec": {"containers": [{"name": "nginx"}]},
    }
    with pytest.raises(AggregateError, match="does not contain a pod template"):
        ServiceAccountOptions.from_args([SERVICE_ACCOUNT]).run([sidecar])