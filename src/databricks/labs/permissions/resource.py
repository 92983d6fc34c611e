import logging
import threading
from collections.abc import Mapping, Sequence
from typing import Any

from databricks.sdk import WorkspaceClient
from databricks.sdk.errors import NotFound

from databricks.labs.permissions.acl import PermissionsEntity, diff
from databricks.labs.permissions.api import PermissionsAPI
from databricks.labs.permissions.declaration import Declaration, check_caller, parse_access_control
from databricks.labs.permissions.errors import ResolutionError, raise_if_cancelled
from databricks.labs.permissions.invariants import PermissionInvariants
from databricks.labs.permissions.object_types import ObjectType
from databricks.labs.permissions.resolver import PathResolver

logger = logging.getLogger(__name__)


class PermissionsResource:
    """Reconciles the declared access control list of a single object with the one observed on the platform.

    Each operation is a short sequence of calls, where every call depends on the result of the previous one:
    identify the caller, resolve the path, read the current state, and write the new one. Nothing is retried
    and nothing is rolled back. When `cancelled` is set, no further calls are made.
    """

    def __init__(
        self,
        ws: WorkspaceClient,
        resolver: PathResolver,
        invariants: PermissionInvariants,
        api: PermissionsAPI,
    ):
        self._ws = ws
        self._resolver = resolver
        self._invariants = invariants
        self._api = api

    def read(
        self, object_type: ObjectType, object_path: str, *, cancelled: threading.Event | None = None
    ) -> PermissionsEntity | None:
        """Returns the observed permissions, or None if the object was removed on the backend"""
        caller = self._caller(cancelled)
        try:
            acl = self._api.get(object_type, object_path, cancelled=cancelled)
        except NotFound:
            logger.warning(f"removed on backend: {object_path}")
            return None
        return acl.to_entity(caller)

    def create(self, declared: Mapping[str, Any], *, cancelled: threading.Event | None = None) -> str:
        """Applies declared permissions to a new object and returns the path it is tracked by"""
        declaration = Declaration.parse(declared)
        caller = self._caller(cancelled)
        check_caller(declaration.access_control, caller)
        object_type, object_path = self._resolver.resolve(declaration.identifier, cancelled=cancelled)
        change_list = self._invariants.for_write(object_type, declaration.access_control, caller)
        self._api.set(object_type, object_path, change_list, cancelled=cancelled)
        return object_path

    def update(
        self,
        object_type: ObjectType,
        object_path: str,
        access_control: Sequence[Mapping[str, Any]],
        *,
        cancelled: threading.Event | None = None,
    ) -> None:
        desired = parse_access_control(access_control)
        caller = self._caller(cancelled)
        check_caller(desired, caller)
        current = self._api.get(object_type, object_path, cancelled=cancelled)
        changes = diff(current.to_entity(caller), desired)
        if not changes:
            logger.debug(f"No changes in {object_path}, re-asserting declared permissions")
        else:
            logger.debug(f"Changes in {object_path}: {changes}")
        change_list = self._invariants.for_write(object_type, desired, caller, current)
        self._api.set(object_type, object_path, change_list, cancelled=cancelled)

    def delete(self, object_type: ObjectType, object_path: str, *, cancelled: threading.Event | None = None) -> None:
        self._api.delete(object_type, object_path, cancelled=cancelled)

    def _caller(self, cancelled: threading.Event | None) -> str:
        raise_if_cancelled(cancelled, "identifying the caller")
        me = self._ws.current_user.me()
        if not me.user_name:
            raise ResolutionError("Cannot identify the current user")
        return me.user_name
