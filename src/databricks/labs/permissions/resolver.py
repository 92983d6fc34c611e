import logging
import threading

from databricks.sdk import WorkspaceClient
from databricks.sdk.errors import DatabricksError

from databricks.labs.permissions.errors import ResolutionError, raise_if_cancelled
from databricks.labs.permissions.object_types import DeclaredIdentifier, IdentifierKind, ObjectType

logger = logging.getLogger(__name__)


class PathResolver:
    """Turns a declared identifier into the object type and object path that permissions are applied to.

    Opaque identifiers are substituted into the path as they are. Workspace paths are looked up, and the
    object type reported by the lookup wins over the declared one, as a notebook path may point to a repo.
    """

    def __init__(self, ws: WorkspaceClient):
        self._ws = ws

    def resolve(
        self, identifier: DeclaredIdentifier, *, cancelled: threading.Event | None = None
    ) -> tuple[ObjectType, str]:
        object_type, object_id = identifier.object_type, identifier.value
        if identifier.field.kind is IdentifierKind.WORKSPACE_PATH:
            object_type, object_id = self._lookup(identifier.value, cancelled)
        object_path = object_type.object_path(object_id)
        logger.debug(f"Resolved {identifier.field.name}={identifier.value} to {object_path}")
        return object_type, object_path

    def _lookup(self, path: str, cancelled: threading.Event | None) -> tuple[ObjectType, str]:
        raise_if_cancelled(cancelled, f"looking up {path}")
        try:
            # typed ObjectInfo drops subtypes it does not know, such as the lower-case "repo"
            status = self._ws.api_client.do("GET", "/api/2.0/workspace/get-status", query={"path": path})
        except DatabricksError as e:
            raise ResolutionError(f"Cannot load path {path}: {e}") from e
        assert isinstance(status, dict)
        reported = status.get("object_type")
        object_type = self._convert_object_type(reported)
        if object_type is None or status.get("object_id") is None:
            raise ResolutionError(f"Cannot load path {path}: unsupported object {reported}")
        return object_type, str(status["object_id"])

    @staticmethod
    def _convert_object_type(reported: str | None) -> ObjectType | None:
        if reported is None:
            return None
        match reported.upper():
            case "NOTEBOOK":
                return ObjectType.NOTEBOOKS
            case "DIRECTORY":
                return ObjectType.DIRECTORIES
            case "REPO":
                return ObjectType.REPOS
            case "FILE":
                return ObjectType.FILES
        # libraries and dashboards have no permissions of their own
        return None


class CreatorLookup:
    """Finds the user who created an object that must always have an owner"""

    def __init__(self, ws: WorkspaceClient):
        self._ws = ws

    def creator(self, object_type: ObjectType, object_id: str, *, cancelled: threading.Event | None = None) -> str:
        raise_if_cancelled(cancelled, f"looking up creator of {object_type.value} {object_id}")
        try:
            creator = self._fetch_creator(object_type, object_id)
        except DatabricksError as e:
            raise ResolutionError(f"Cannot load creator of {object_type.value} {object_id}: {e}") from e
        if not creator:
            raise ResolutionError(f"Cannot load creator of {object_type.value} {object_id}: not reported")
        return creator

    def _fetch_creator(self, object_type: ObjectType, object_id: str) -> str | None:
        if object_type is ObjectType.JOBS:
            if not object_id.isdigit():
                raise ResolutionError(f"Cannot load creator of {object_type.value} {object_id}: not a job id")
            return self._ws.jobs.get(int(object_id)).creator_user_name
        if object_type is ObjectType.PIPELINES:
            return self._ws.pipelines.get(object_id).creator_user_name
        raise ResolutionError(f"{object_type.value} have no creator")
