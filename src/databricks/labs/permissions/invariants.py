import logging
import threading
from collections.abc import Iterable

from databricks.labs.permissions.acl import (
    ADMINS_GROUP,
    CAN_MANAGE,
    IS_OWNER,
    AccessControlChange,
    AccessControlChangeList,
    ObjectACL,
)
from databricks.labs.permissions.object_types import ObjectType
from databricks.labs.permissions.resolver import CreatorLookup

logger = logging.getLogger(__name__)


class PermissionInvariants:
    """Adds the entries the platform requires, but does not enforce on its own, to an access control list.

    - the caller never locks itself out of SQL objects
    - the admins group keeps CAN_MANAGE everywhere except on passwords
    - jobs and pipelines always have exactly one owner
    """

    def __init__(self, creators: CreatorLookup):
        self._creators = creators

    def for_write(
        self,
        object_type: ObjectType,
        desired: Iterable[AccessControlChange],
        caller: str,
        current: ObjectACL | None = None,
    ) -> AccessControlChangeList:
        change_list = AccessControlChangeList()
        for change in desired:
            if change.principal_key in change_list.principals():
                logger.warning(f"Ignoring duplicate declaration of {change} on {object_type.value}")
                continue
            retained = change.is_admins and not object_type.exempt_from_admin_retention
            if retained and change.permission_level != CAN_MANAGE:
                logger.warning(f"Overriding {change} on {object_type.value}: admins always keep {CAN_MANAGE}")
                change = change.with_level(CAN_MANAGE)
            change_list.append(change)
        if object_type.retains_caller and ("user_name", caller) not in change_list.principals():
            change_list.append(AccessControlChange(CAN_MANAGE, user_name=caller))
        if self._needs_admins(object_type, change_list, current):
            change_list.append(AccessControlChange(CAN_MANAGE, group_name=ADMINS_GROUP))
        if object_type.has_owner:
            self._assign_owner(object_type, change_list, caller, current)
        logger.debug(f"Prepared {object_type.value} access control list: {change_list}")
        return change_list

    def for_reset(
        self,
        object_type: ObjectType,
        object_path: str,
        current: ObjectACL,
        *,
        cancelled: threading.Event | None = None,
    ) -> AccessControlChangeList:
        """Builds the payload that removes everything, except what the platform must keep.

        Raises:
            ResolutionError: when the creator of an object that must have an owner cannot be found
        """
        change_list = AccessControlChangeList()
        if self._needs_admins(object_type, change_list, current):
            change_list.append(AccessControlChange(CAN_MANAGE, group_name=ADMINS_GROUP))
        if object_type.has_owner:
            object_id = object_type.object_id(object_path)
            creator = self._creators.creator(object_type, object_id, cancelled=cancelled)
            change_list.append(AccessControlChange(IS_OWNER, user_name=creator))
        logger.debug(f"Prepared {object_path} reset: {change_list}")
        return change_list

    @staticmethod
    def _needs_admins(
        object_type: ObjectType, change_list: AccessControlChangeList, current: ObjectACL | None
    ) -> bool:
        if object_type.exempt_from_admin_retention:
            return False
        if ("group_name", ADMINS_GROUP) in change_list.principals():
            return False
        if object_type.always_grants_admins:
            return True
        if current is None:
            return False
        return any(_.is_admins for _ in current.direct_changes())

    @staticmethod
    def _assign_owner(
        object_type: ObjectType, change_list: AccessControlChangeList, caller: str, current: ObjectACL | None
    ):
        if any(_.permission_level == IS_OWNER for _ in change_list):
            return
        candidates = [AccessControlChange(IS_OWNER, user_name=caller)]
        if current is not None:
            owner = current.owner()
            if owner is not None:
                candidates.insert(0, owner)
        for candidate in candidates:
            if candidate.principal_key in change_list.principals():
                continue
            change_list.append(candidate)
            return
        principals = [_.principal for _ in candidates]
        logger.warning(f"Cannot assign an owner to {object_type.value}: {principals} already have other levels")
