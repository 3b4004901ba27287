import pytest

from kruiseset.subject import (
    Subject,
    SubjectOptions,
    add_subjects,
    update_subject_for_object,
)
from kruiseset.workloads import AggregateError, DryRun

RBAC = "rbac.authorization.k8s.io"


def _user(name):
    return Subject(kind="User", api_group=RBAC, name=name)


def _group(name):
    return Subject(kind="Group", api_group=RBAC, name=name)


def _sa(namespace, name):
    return Subject(kind="ServiceAccount", namespace=namespace, name=name)


def _cluster_binding(subjects=None):
    obj = {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRoleBinding",
        "metadata": {"name": "clusterrolebinding"},
        "roleRef": {"apiGroup": RBAC, "kind": "ClusterRole", "name": "role"},
    }
    if subjects is not None:
        obj["subjects"] = [s.to_dict() for s in subjects]
    return obj


def _role_binding(subjects=None):
    obj = {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "RoleBinding",
        "metadata": {"name": "rolebinding", "namespace": "one"},
        "roleRef": {"apiGroup": RBAC, "kind": "ClusterRole", "name": "role"},
    }
    if subjects is not None:
        obj["subjects"] = [s.to_dict() for s in subjects]
    return obj


def _subjects_of(obj):
    return [Subject.from_dict(d) for d in obj.get("subjects", [])]


@pytest.mark.parametrize(
    "options,objects",
    [
        (SubjectOptions(), []),
        (SubjectOptions(service_accounts=["foo"]), []),
        (SubjectOptions(service_accounts=["foo:"]), []),
        (SubjectOptions(service_accounts=[":foo"]), [_cluster_binding()]),
        (SubjectOptions(service_accounts=["a:b:c"]), []),
        (SubjectOptions(users=["u"], local=True, dry_run=DryRun.SERVER), []),
        (SubjectOptions(users=["u"], all=True, selector="a=b"), []),
    ],
    ids=[
        "missing-subjects",
        "invalid-serviceaccounts",
        "missing-serviceaccounts-name",
        "missing-serviceaccounts-namespace",
        "too-many-parts",
        "local-server-dry-run",
        "all-and-selector",
    ],
)
def test_validate_errors(options, objects):
    with pytest.raises(ValueError):
        options.validate(objects)


def test_validate_missing_namespace_message():
    options = SubjectOptions(service_accounts=[":foo"])
    with pytest.raises(ValueError, match="namespace must be specified"):
        options.validate([_cluster_binding()])


def test_validate_valid_case():
    options = SubjectOptions(users=["foo"], groups=["foo"], service_accounts=["ns:foo"])
    options.validate([_role_binding()])
    assert options.build_subjects() == [_user("foo"), _group("foo"), _sa("ns", "foo")]


def test_empty_namespace_allowed_for_role_binding():
    options = SubjectOptions(service_accounts=[":foo"], namespace="test")
    options.validate([_role_binding()])
    assert options.build_subjects() == [_sa("test", "foo")]


def test_update_subject_invalid_object_type():
    role = {"apiVersion": "rbac.authorization.k8s.io/v1", "kind": "Role",
            "metadata": {"name": "role", "namespace": "one"}}
    with pytest.raises(ValueError, match="only supported for RoleBinding/ClusterRoleBinding"):
        update_subject_for_object(role, [], add_subjects)
    assert "subjects" not in role


@pytest.mark.parametrize(
    "obj,subjects,expected",
    [
        (
            _role_binding([_user("a")]),
            [_user("a"), _user("b")],
            [_user("a"), _user("b")],
        ),
        (
            _role_binding([_group("a")]),
            [_group("a"), _group("b")],
            [_group("a"), _group("b")],
        ),
        (
            _role_binding([_sa("one", "a")]),
            [_sa("one", "a"), _sa("one", "b")],
            [_sa("one", "a"), _sa("one", "b")],
        ),
        (
            _cluster_binding([_user("a"), _group("a")]),
            [_sa("one", "a")],
            [_user("a"), _group("a"), _sa("one", "a")],
        ),
    ],
    ids=["users", "groups", "serviceaccounts", "cluster-serviceaccounts"],
)
def test_update_subject_for_object(obj, subjects, expected):
    assert update_subject_for_object(obj, subjects, add_subjects) is True
    assert _subjects_of(obj) == expected


def test_add_subjects_no_change():
    changed, got = add_subjects([_user("a"), _user("b")], [_user("a")])
    assert changed is False
    assert got == [_user("a"), _user("b")]


def test_add_subjects_new_namespace():
    changed, got = add_subjects([_sa("one", "a"), _sa("one", "b")], [_sa("two", "a")])
    assert changed is True
    assert got == [_sa("one", "a"), _sa("one", "b"), _sa("two", "a")]


def test_subject_dict_round_trip():
    subject = _sa("ns", "builder")
    assert subject.to_dict() == {"kind": "ServiceAccount", "name": "builder", "namespace": "ns"}
    assert Subject.from_dict(subject.to_dict()) == subject
    assert _user("x").to_dict() == {"kind": "User", "apiGroup": RBAC, "name": "x"}


def test_build_subjects_sorted_and_unique():
    options = SubjectOptions(users=["b", "a", "b"], groups=["g"], service_accounts=["z:y", "a:b"])
    assert options.build_subjects() == [
        _user("a"), _user("b"), _group("g"), _sa("a", "b"), _sa("z", "y"),
    ]


def test_run_adds_and_reports_changes():
    binding = _role_binding([_user("a")])
    unchanged = _cluster_binding([_user("a")])
    options = SubjectOptions(users=["a", "c"])
    assert options.run([binding], add_subjects) == [binding]
    assert _subjects_of(binding) == [_user("a"), _user("c")]
    assert SubjectOptions(users=["a"]).run([unchanged]) == []
    assert _subjects_of(unchanged) == [_user("a")]


def test_run_on_binding_without_subjects():
    binding = _role_binding()
    result = SubjectOptions(groups=["ops"]).run([binding])
    assert result == [binding]
    assert binding["subjects"] == [{"kind": "Group", "apiGroup": RBAC, "name": "ops"}]


def test_run_collects_errors():
    role = {"apiVersion": "rbac.authorization.k8s.io/v1", "kind": "Role",
            "metadata": {"name": "role"}}
    binding = _role_binding()
    with pytest.raises(AggregateError) as info:
        SubjectOptions(users=["foo"]).run([role, binding])
    assert str(info.value).startswith("error: role.rbac.authorization.k8s.io/role ")
    assert info.value.partial == [binding]