import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from databricks.labs.permissions.errors import InvalidConfig, MissingIdentifier, UnknownObjectType

if sys.version_info >= (3, 11):
    from typing import assert_never
else:
    from typing_extensions import assert_never

logger = logging.getLogger(__name__)


class ApiFamily(Enum):
    """Each family of objects has its own dialect of the permissions API."""

    PERMISSIONS = "permissions"
    SQL_ENDPOINTS = "sql-endpoints"
    SQL_ASSETS = "sql-assets"


class ObjectType(Enum):
    """Objects that carry an access control list. The value is the prefix of the object path."""

    CLUSTERS = "clusters"
    CLUSTER_POLICIES = "cluster-policies"
    INSTANCE_POOLS = "instance-pools"
    JOBS = "jobs"
    PIPELINES = "pipelines"
    NOTEBOOKS = "notebooks"
    DIRECTORIES = "directories"
    FILES = "files"
    REPOS = "repos"
    EXPERIMENTS = "experiments"
    REGISTERED_MODELS = "registered-models"
    SQL_ENDPOINTS = "sql/endpoints"
    SQL_DASHBOARDS = "sql/dashboards"
    SQL_ALERTS = "sql/alerts"
    SQL_QUERIES = "sql/queries"
    TOKENS = "authorization/tokens"
    PASSWORDS = "authorization/passwords"

    @property
    def family(self) -> ApiFamily:
        match self:
            case ObjectType.SQL_ENDPOINTS:
                return ApiFamily.SQL_ENDPOINTS
            case ObjectType.SQL_DASHBOARDS | ObjectType.SQL_ALERTS | ObjectType.SQL_QUERIES:
                return ApiFamily.SQL_ASSETS
            case (
                ObjectType.CLUSTERS
                | ObjectType.CLUSTER_POLICIES
                | ObjectType.INSTANCE_POOLS
                | ObjectType.JOBS
                | ObjectType.PIPELINES
                | ObjectType.NOTEBOOKS
                | ObjectType.DIRECTORIES
                | ObjectType.FILES
                | ObjectType.REPOS
                | ObjectType.EXPERIMENTS
                | ObjectType.REGISTERED_MODELS
                | ObjectType.TOKENS
                | ObjectType.PASSWORDS
            ):
                return ApiFamily.PERMISSIONS
            case _:
                assert_never(self)

    @property
    def write_method(self) -> str:
        match self.family:
            case ApiFamily.PERMISSIONS:
                return "PUT"
            case ApiFamily.SQL_ENDPOINTS:
                return "PATCH"
            case ApiFamily.SQL_ASSETS:
                return "POST"
            case _:
                assert_never(self.family)

    @property
    def exempt_from_admin_retention(self) -> bool:
        # workspace admins may be locked out of password login
        return self is ObjectType.PASSWORDS

    @property
    def always_grants_admins(self) -> bool:
        # the platform refuses to drop CAN_MANAGE of admins on tokens
        return self is ObjectType.TOKENS

    @property
    def has_owner(self) -> bool:
        return self in {ObjectType.JOBS, ObjectType.PIPELINES}

    @property
    def retains_caller(self) -> bool:
        # SQL objects have no inherited admin grant, so the caller keeps CAN_MANAGE explicitly
        return self.family is not ApiFamily.PERMISSIONS

    def object_path(self, object_id: str | None = None) -> str:
        if self in {ObjectType.TOKENS, ObjectType.PASSWORDS}:
            return f"/{self.value}"
        if not object_id:
            raise ValueError(f"{self.value} requires an object id")
        return f"/{self.value}/{object_id}"

    def api_path(self, object_path: str) -> str:
        match self.family:
            case ApiFamily.SQL_ASSETS:
                # /sql/dashboards/abc -> /api/2.0/preview/sql/permissions/dashboards/abc
                return f"/api/2.0/preview/sql/permissions{object_path.removeprefix('/sql')}"
            case ApiFamily.PERMISSIONS | ApiFamily.SQL_ENDPOINTS:
                return f"/api/2.0/permissions{object_path}"
            case _:
                assert_never(self.family)

    def object_id(self, object_path: str) -> str:
        if self in {ObjectType.TOKENS, ObjectType.PASSWORDS}:
            return self.value.split("/")[-1]
        return object_path.removeprefix(f"/{self.value}/")

    @classmethod
    def for_path(cls, object_path: str) -> "ObjectType":
        # longest prefix first, so that sql/endpoints never matches a shorter prefix
        for object_type in sorted(cls, key=lambda t: len(t.value), reverse=True):
            prefix = f"/{object_type.value}"
            if object_path == prefix or object_path.startswith(f"{prefix}/"):
                return object_type
        raise UnknownObjectType(object_path)

    @classmethod
    def for_label(cls, label: str | None) -> "ObjectType":
        """Classifies the object type reported by the server, which is mostly singular and lower-case"""
        if label is None:
            raise UnknownObjectType(label)
        object_type = _SERVER_LABELS.get(label.lower())
        if object_type is None:
            raise UnknownObjectType(label)
        return object_type


_SERVER_LABELS: dict[str, ObjectType] = {
    "cluster": ObjectType.CLUSTERS,
    "clusters": ObjectType.CLUSTERS,
    "cluster-policy": ObjectType.CLUSTER_POLICIES,
    "cluster-policies": ObjectType.CLUSTER_POLICIES,
    "instance-pool": ObjectType.INSTANCE_POOLS,
    "instance-pools": ObjectType.INSTANCE_POOLS,
    "job": ObjectType.JOBS,
    "jobs": ObjectType.JOBS,
    "pipeline": ObjectType.PIPELINES,
    "pipelines": ObjectType.PIPELINES,
    "notebook": ObjectType.NOTEBOOKS,
    "notebooks": ObjectType.NOTEBOOKS,
    "directory": ObjectType.DIRECTORIES,
    "directories": ObjectType.DIRECTORIES,
    "file": ObjectType.FILES,
    "files": ObjectType.FILES,
    "repo": ObjectType.REPOS,
    "repos": ObjectType.REPOS,
    "mlflowexperiment": ObjectType.EXPERIMENTS,
    "experiment": ObjectType.EXPERIMENTS,
    "experiments": ObjectType.EXPERIMENTS,
    "registered-model": ObjectType.REGISTERED_MODELS,
    "registered-models": ObjectType.REGISTERED_MODELS,
    "endpoint": ObjectType.SQL_ENDPOINTS,
    "endpoints": ObjectType.SQL_ENDPOINTS,
    "warehouses": ObjectType.SQL_ENDPOINTS,
    "dashboard": ObjectType.SQL_DASHBOARDS,
    "dashboards": ObjectType.SQL_DASHBOARDS,
    "alert": ObjectType.SQL_ALERTS,
    "alerts": ObjectType.SQL_ALERTS,
    "query": ObjectType.SQL_QUERIES,
    "queries": ObjectType.SQL_QUERIES,
    "tokens": ObjectType.TOKENS,
    "passwords": ObjectType.PASSWORDS,
}


class IdentifierKind(Enum):
    OPAQUE = "opaque"
    WORKSPACE_PATH = "workspace-path"
    AUTHORIZATION = "authorization"


@dataclass(frozen=True)
class IdentifierField:
    name: str
    object_type: ObjectType
    kind: IdentifierKind = IdentifierKind.OPAQUE


IDENTIFIER_FIELDS: tuple[IdentifierField, ...] = (
    IdentifierField("cluster_id", ObjectType.CLUSTERS),
    IdentifierField("cluster_policy_id", ObjectType.CLUSTER_POLICIES),
    IdentifierField("instance_pool_id", ObjectType.INSTANCE_POOLS),
    IdentifierField("job_id", ObjectType.JOBS),
    IdentifierField("pipeline_id", ObjectType.PIPELINES),
    IdentifierField("notebook_id", ObjectType.NOTEBOOKS),
    IdentifierField("notebook_path", ObjectType.NOTEBOOKS, IdentifierKind.WORKSPACE_PATH),
    IdentifierField("directory_id", ObjectType.DIRECTORIES),
    IdentifierField("directory_path", ObjectType.DIRECTORIES, IdentifierKind.WORKSPACE_PATH),
    IdentifierField("workspace_file_id", ObjectType.FILES),
    IdentifierField("workspace_file_path", ObjectType.FILES, IdentifierKind.WORKSPACE_PATH),
    IdentifierField("repo_id", ObjectType.REPOS),
    IdentifierField("repo_path", ObjectType.REPOS, IdentifierKind.WORKSPACE_PATH),
    IdentifierField("experiment_id", ObjectType.EXPERIMENTS),
    IdentifierField("registered_model_id", ObjectType.REGISTERED_MODELS),
    IdentifierField("sql_endpoint_id", ObjectType.SQL_ENDPOINTS),
    IdentifierField("sql_dashboard_id", ObjectType.SQL_DASHBOARDS),
    IdentifierField("sql_alert_id", ObjectType.SQL_ALERTS),
    IdentifierField("sql_query_id", ObjectType.SQL_QUERIES),
    IdentifierField("authorization", ObjectType.TOKENS, IdentifierKind.AUTHORIZATION),
)


@dataclass(frozen=True)
class DeclaredIdentifier:
    field: IdentifierField
    value: str

    @property
    def object_type(self) -> ObjectType:
        if self.field.kind is IdentifierKind.AUTHORIZATION and self.value == "passwords":
            return ObjectType.PASSWORDS
        return self.field.object_type


def classify(declared: Mapping[str, Any]) -> DeclaredIdentifier:
    """Finds the only identifier field that is set in the declared configuration.

    Raises:
        MissingIdentifier: when no identifier field is set
        InvalidConfig: when more than one identifier field is set, naming every one of them
    """
    found = []
    for field in IDENTIFIER_FIELDS:
        value = declared.get(field.name)
        if value is None or value == "":
            continue
        found.append(DeclaredIdentifier(field, str(value)))
    if not found:
        raise MissingIdentifier()
    if len(found) > 1:
        raise InvalidConfig([(_.field.name, "Conflicting configuration arguments") for _ in found])
    identifier = found[0]
    if identifier.field.kind is IdentifierKind.AUTHORIZATION and identifier.value not in {"tokens", "passwords"}:
        raise InvalidConfig([(identifier.field.name, f"expected tokens or passwords, got {identifier.value}")])
    logger.debug(f"Classified {identifier.field.name}={identifier.value} as {identifier.object_type.value}")
    return identifier
