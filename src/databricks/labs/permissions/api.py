import logging
import threading

from databricks.labs.blueprint.limiter import rate_limited
from databricks.sdk import WorkspaceClient
from databricks.sdk.errors import BadRequest, NotFound

from databricks.labs.permissions.acl import AccessControlChangeList, ObjectACL
from databricks.labs.permissions.errors import raise_if_cancelled
from databricks.labs.permissions.invariants import PermissionInvariants
from databricks.labs.permissions.object_types import ObjectType

logger = logging.getLogger(__name__)


class PermissionsAPI:
    """Speaks the dialect of the permissions API that belongs to each object type.

    Errors from the platform are propagated as they are, with their original error code and message.
    """

    def __init__(self, ws: WorkspaceClient, invariants: PermissionInvariants):
        self._ws = ws
        self._invariants = invariants

    @rate_limited(max_requests=100)
    def get(self, object_type: ObjectType, object_path: str, *, cancelled: threading.Event | None = None) -> ObjectACL:
        raise_if_cancelled(cancelled, f"reading {object_path} permissions")
        try:
            raw = self._ws.api_client.do("GET", object_type.api_path(object_path))
        except BadRequest as e:
            # platform reports auto-purged clusters as invalid requests
            if "Cannot access cluster" in str(e):
                raise NotFound(str(e)) from e
            raise
        assert isinstance(raw, dict)
        return ObjectACL.from_dict(raw)

    @rate_limited(max_requests=30)
    def set(
        self,
        object_type: ObjectType,
        object_path: str,
        change_list: AccessControlChangeList,
        *,
        cancelled: threading.Event | None = None,
    ) -> None:
        raise_if_cancelled(cancelled, f"writing {object_path} permissions")
        method = object_type.write_method
        logger.info(f"Updating {object_path} permissions via {method}: {change_list}")
        self._ws.api_client.do(method, object_type.api_path(object_path), body=change_list.as_dict())

    def delete(self, object_type: ObjectType, object_path: str, *, cancelled: threading.Event | None = None) -> bool:
        """Removes every grant the platform does not insist on.

        Returns:
            bool: False if the object was already removed on the backend
        """
        try:
            current = self.get(object_type, object_path, cancelled=cancelled)
        except NotFound:
            logger.warning(f"removed on backend: {object_path}")
            return False
        reset = self._invariants.for_reset(object_type, object_path, current, cancelled=cancelled)
        self.set(object_type, object_path, reset, cancelled=cancelled)
        return True
