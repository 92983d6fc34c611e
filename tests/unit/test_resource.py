import threading
from unittest.mock import call

import pytest
from databricks.sdk.errors import BadRequest, NotFound, PermissionDenied
from databricks.sdk.service import jobs

from databricks.labs.permissions.acl import AccessControlChange
from databricks.labs.permissions.errors import InvalidConfig, OperationCancelled, ResolutionError
from databricks.labs.permissions.object_types import ObjectType

from . import TESTING_ADMIN_USER, TESTING_USER, direct, object_acl


def test_read_cluster(ctx):
    ctx.workspace_client.api_client.do.return_value = object_acl(
        "/clusters/abc",
        "cluster",
        direct("CAN_READ", user_name=TESTING_USER),
        direct("CAN_MANAGE", user_name=TESTING_ADMIN_USER),
    )
    entity = ctx.permissions_resource.read(ObjectType.CLUSTERS, "/clusters/abc")
    assert entity is not None
    assert entity.object_type is ObjectType.CLUSTERS
    assert entity.access_control_list == [AccessControlChange("CAN_READ", user_name=TESTING_USER)]


def test_read_sql_dashboard(ctx):
    ctx.workspace_client.api_client.do.return_value = {
        "object_id": "dashboards/abc",
        "object_type": "dashboard",
        "access_control_list": [
            {"user_name": TESTING_USER, "permission_level": "CAN_RUN"},
            {"user_name": TESTING_ADMIN_USER, "permission_level": "CAN_MANAGE"},
        ],
    }
    entity = ctx.permissions_resource.read(ObjectType.SQL_DASHBOARDS, "/sql/dashboards/abc")
    assert entity is not None
    assert entity.access_control_list == [AccessControlChange("CAN_RUN", user_name=TESTING_USER)]


def test_read_removed_object(ctx):
    ctx.workspace_client.api_client.do.side_effect = NotFound("Cluster abc does not exist")
    assert ctx.permissions_resource.read(ObjectType.CLUSTERS, "/clusters/abc") is None


def test_read_error(ctx):
    ctx.workspace_client.api_client.do.side_effect = BadRequest("Internal error happened", error_code="INVALID_REQUEST")
    with pytest.raises(BadRequest, match="Internal error happened"):
        ctx.permissions_resource.read(ObjectType.CLUSTERS, "/clusters/abc")


def test_read_fails_when_caller_is_unknown(ctx):
    ctx.workspace_client.current_user.me.side_effect = PermissionDenied("Internal error happened")
    with pytest.raises(PermissionDenied):
        ctx.permissions_resource.read(ObjectType.CLUSTERS, "/clusters/abc")
    ctx.workspace_client.api_client.do.assert_not_called()


def test_create_cluster(ctx):
    object_path = ctx.permissions_resource.create(
        {
            "cluster_id": "abc",
            "access_control": [{"user_name": TESTING_USER, "permission_level": "CAN_USE"}],
        }
    )
    assert object_path == "/clusters/abc"
    ctx.workspace_client.api_client.do.assert_called_once_with(
        "PUT",
        "/api/2.0/permissions/clusters/abc",
        body={"access_control_list": [{"user_name": TESTING_USER, "permission_level": "CAN_USE"}]},
    )


def test_create_sql_dashboard(ctx):
    object_path = ctx.permissions_resource.create(
        {
            "sql_dashboard_id": "abc",
            "access_control": [{"user_name": TESTING_USER, "permission_level": "CAN_RUN"}],
        }
    )
    assert object_path == "/sql/dashboards/abc"
    ctx.workspace_client.api_client.do.assert_called_once_with(
        "POST",
        "/api/2.0/preview/sql/permissions/dashboards/abc",
        body={
            "access_control_list": [
                {"user_name": TESTING_USER, "permission_level": "CAN_RUN"},
                {"user_name": TESTING_ADMIN_USER, "permission_level": "CAN_MANAGE"},
            ]
        },
    )


def test_create_sql_endpoint(ctx):
    object_path = ctx.permissions_resource.create(
        {
            "sql_endpoint_id": "abc",
            "access_control": [{"user_name": TESTING_USER, "permission_level": "CAN_USE"}],
        }
    )
    assert object_path == "/sql/endpoints/abc"
    ctx.workspace_client.api_client.do.assert_called_once_with(
        "PATCH",
        "/api/2.0/permissions/sql/endpoints/abc",
        body={
            "access_control_list": [
                {"user_name": TESTING_USER, "permission_level": "CAN_USE"},
                {"user_name": TESTING_ADMIN_USER, "permission_level": "CAN_MANAGE"},
            ]
        },
    )


def test_create_notebook_by_path(ctx):
    ctx.workspace_client.api_client.do.side_effect = [{"object_id": 988765, "object_type": "NOTEBOOK"}, {}]
    object_path = ctx.permissions_resource.create(
        {
            "notebook_path": "/Development/Init",
            "access_control": [{"user_name": TESTING_USER, "permission_level": "CAN_READ"}],
        }
    )
    assert object_path == "/notebooks/988765"
    ctx.workspace_client.api_client.do.assert_called_with(
        "PUT",
        "/api/2.0/permissions/notebooks/988765",
        body={"access_control_list": [{"user_name": TESTING_USER, "permission_level": "CAN_READ"}]},
    )


def test_create_repo_by_path(ctx):
    ctx.workspace_client.api_client.do.side_effect = [{"object_id": 988765, "object_type": "repo"}, {}]
    object_path = ctx.permissions_resource.create(
        {
            "repo_path": "/Repos/ben/project",
            "access_control": [{"user_name": TESTING_USER, "permission_level": "CAN_READ"}],
        }
    )
    assert object_path == "/repos/988765"
    ctx.workspace_client.api_client.do.assert_called_with(
        "PUT",
        "/api/2.0/permissions/repos/988765",
        body={"access_control_list": [{"user_name": TESTING_USER, "permission_level": "CAN_READ"}]},
    )


def test_create_path_lookup_error(ctx):
    ctx.workspace_client.api_client.do.side_effect = NotFound("Path (/Development/Init) doesn't exist.")
    with pytest.raises(ResolutionError, match="Cannot load path /Development/Init"):
        ctx.permissions_resource.create(
            {
                "notebook_path": "/Development/Init",
                "access_control": [{"user_name": TESTING_USER, "permission_level": "CAN_READ"}],
            }
        )
    assert ctx.workspace_client.api_client.do.call_count == 1


def test_create_error_is_propagated(ctx):
    ctx.workspace_client.api_client.do.side_effect = BadRequest("Internal error happened", error_code="INVALID_REQUEST")
    with pytest.raises(BadRequest) as failure:
        ctx.permissions_resource.create(
            {
                "cluster_id": "abc",
                "access_control": [{"user_name": TESTING_USER, "permission_level": "CAN_USE"}],
            }
        )
    assert failure.value.error_code == "INVALID_REQUEST"


@pytest.mark.parametrize(
    "declared,message",
    [
        ({"access_control": []}, "at least one type of resource identifier must be set"),
        (
            {"cluster_id": "abc", "notebook_path": "/Init", "access_control": []},
            "invalid config supplied. [cluster_id] Conflicting configuration arguments. "
            "[notebook_path] Conflicting configuration arguments",
        ),
        ({"cluster_id": "abc"}, "invalid config supplied. [access_control] Missing required argument"),
        (
            {"cluster_id": "abc", "access_control": [{"group_name": "admins", "permission_level": "CAN_USE"}]},
            "It is not possible to restrict any permissions from `admins`",
        ),
        (
            {"cluster_id": "abc", "access_control": [{"user_name": TESTING_ADMIN_USER, "permission_level": "CAN_USE"}]},
            "decrease administrative permissions for the current user: admin",
        ),
    ],
)
def test_create_invalid_config(ctx, declared, message):
    with pytest.raises(InvalidConfig) as failure:
        ctx.permissions_resource.create(declared)
    assert message in str(failure.value)
    ctx.workspace_client.api_client.do.assert_not_called()


def test_update_job(ctx):
    ctx.workspace_client.api_client.do.side_effect = [
        object_acl(
            "/jobs/9",
            "job",
            direct("CAN_MANAGE", user_name=TESTING_ADMIN_USER),
            direct("CAN_VIEW", group_name="users"),
        ),
        {},
    ]
    ctx.permissions_resource.update(
        ObjectType.JOBS,
        "/jobs/9",
        [{"user_name": TESTING_USER, "permission_level": "CAN_VIEW"}],
    )
    ctx.workspace_client.api_client.do.assert_has_calls(
        [
            call("GET", "/api/2.0/permissions/jobs/9"),
            call(
                "PUT",
                "/api/2.0/permissions/jobs/9",
                body={
                    "access_control_list": [
                        {"user_name": TESTING_USER, "permission_level": "CAN_VIEW"},
                        {"user_name": TESTING_ADMIN_USER, "permission_level": "IS_OWNER"},
                    ]
                },
            ),
        ]
    )


def test_update_tokens(ctx):
    ctx.workspace_client.api_client.do.side_effect = [
        object_acl("/authorization/tokens", "tokens", direct("CAN_USE", group_name="users")),
        {},
    ]
    ctx.permissions_resource.update(
        ObjectType.TOKENS,
        "/authorization/tokens",
        [{"user_name": "me", "permission_level": "CAN_MANAGE"}],
    )
    ctx.workspace_client.api_client.do.assert_called_with(
        "PUT",
        "/api/2.0/permissions/authorization/tokens",
        body={
            "access_control_list": [
                {"user_name": "me", "permission_level": "CAN_MANAGE"},
                {"group_name": "admins", "permission_level": "CAN_MANAGE"},
            ]
        },
    )


def test_delete_job(ctx):
    ctx.workspace_client.jobs.get.return_value = jobs.Job(job_id=9, creator_user_name="creator@example.com")
    ctx.workspace_client.api_client.do.side_effect = [
        object_acl("/jobs/9", "job", direct("CAN_MANAGE", group_name="admins")),
        {},
    ]
    ctx.permissions_resource.delete(ObjectType.JOBS, "/jobs/9")
    ctx.workspace_client.api_client.do.assert_called_with(
        "PUT",
        "/api/2.0/permissions/jobs/9",
        body={
            "access_control_list": [
                {"group_name": "admins", "permission_level": "CAN_MANAGE"},
                {"user_name": "creator@example.com", "permission_level": "IS_OWNER"},
            ]
        },
    )


def test_delete_removed_object(ctx):
    ctx.workspace_client.api_client.do.side_effect = NotFound("Job 9 does not exist")
    ctx.permissions_resource.delete(ObjectType.JOBS, "/jobs/9")
    ctx.workspace_client.jobs.get.assert_not_called()


def test_cancelled_before_anything_happens(ctx):
    cancelled = threading.Event()
    cancelled.set()
    with pytest.raises(OperationCancelled, match="cancelled before identifying the caller"):
        ctx.permissions_resource.create(
            {
                "cluster_id": "abc",
                "access_control": [{"user_name": TESTING_USER, "permission_level": "CAN_USE"}],
            },
            cancelled=cancelled,
        )
    ctx.workspace_client.current_user.me.assert_not_called()
    ctx.workspace_client.api_client.do.assert_not_called()
