import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from databricks.labs.permissions.object_types import ObjectType

logger = logging.getLogger(__name__)

ADMINS_GROUP = "admins"
CAN_MANAGE = "CAN_MANAGE"
IS_OWNER = "IS_OWNER"

_PRINCIPAL_FIELDS = ("user_name", "group_name", "service_principal_name")


@dataclass(frozen=True)
class AccessControlChange:
    """A single principal getting a single permission level, as it is sent over the wire."""

    permission_level: str
    user_name: str | None = None
    group_name: str | None = None
    service_principal_name: str | None = None

    def __post_init__(self):
        principals = [_ for _ in (self.user_name, self.group_name, self.service_principal_name) if _]
        if len(principals) != 1:
            raise ValueError(f"exactly one principal must be set, got {principals}")

    @property
    def principal(self) -> str:
        return self.user_name or self.group_name or self.service_principal_name or ""

    @property
    def principal_key(self) -> tuple[str, str]:
        """Identifies the principal together with its kind, as a user and a group may share a name"""
        for kind in _PRINCIPAL_FIELDS:
            name = getattr(self, kind)
            if name:
                return kind, name
        return "", ""

    @property
    def is_admins(self) -> bool:
        return self.group_name == ADMINS_GROUP

    def with_level(self, permission_level: str) -> "AccessControlChange":
        return AccessControlChange(
            permission_level=permission_level,
            user_name=self.user_name,
            group_name=self.group_name,
            service_principal_name=self.service_principal_name,
        )

    def as_dict(self) -> dict[str, str]:
        body = {_: getattr(self, _) for _ in _PRINCIPAL_FIELDS if getattr(self, _)}
        body["permission_level"] = self.permission_level
        return body

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "AccessControlChange":
        return cls(
            permission_level=d["permission_level"],
            user_name=d.get("user_name") or None,
            group_name=d.get("group_name") or None,
            service_principal_name=d.get("service_principal_name") or None,
        )

    def __str__(self):
        return f"{self.principal} {self.permission_level}"


@dataclass
class AccessControlChangeList:
    access_control_list: list[AccessControlChange] = field(default_factory=list)

    def principals(self) -> set[tuple[str, str]]:
        return {_.principal_key for _ in self.access_control_list}

    def append(self, change: AccessControlChange):
        self.access_control_list.append(change)

    def as_dict(self) -> dict[str, list[dict[str, str]]]:
        return {"access_control_list": [_.as_dict() for _ in self.access_control_list]}

    def __iter__(self):
        return iter(self.access_control_list)

    def __len__(self):
        return len(self.access_control_list)

    def __str__(self):
        return ", ".join(str(_) for _ in self.access_control_list)


@dataclass
class Permission:
    permission_level: str
    inherited: bool = False
    inherited_from_object: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Permission":
        return cls(
            permission_level=d["permission_level"],
            inherited=d.get("inherited", False),
            inherited_from_object=d.get("inherited_from_object") or [],
        )

    def as_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"permission_level": self.permission_level, "inherited": self.inherited}
        if self.inherited_from_object:
            body["inherited_from_object"] = self.inherited_from_object
        return body

    def __str__(self):
        if not self.inherited_from_object:
            return self.permission_level
        return f"{self.permission_level} (from [{' '.join(self.inherited_from_object)}])"


@dataclass
class AccessControl:
    """Everything one principal holds on an object, as it is returned by the server.

    Workspace objects nest grants under `all_permissions`, while SQL objects return a single flat
    `permission_level` per entry.
    """

    user_name: str | None = None
    group_name: str | None = None
    service_principal_name: str | None = None
    all_permissions: list[Permission] = field(default_factory=list)
    permission_level: str | None = None

    @property
    def principal(self) -> str | None:
        return self.user_name or self.group_name or self.service_principal_name

    @property
    def is_admins(self) -> bool:
        return self.group_name == ADMINS_GROUP

    def is_inherited_only(self) -> bool:
        if self.permission_level:
            return False
        return all(_.inherited for _ in self.all_permissions)

    def to_change(self) -> AccessControlChange | None:
        """Returns the first direct grant, or None when this entry has nothing to change.

        If a principal holds more than one direct grant, the first one wins and the rest are not merged.
        """
        if not self.principal:
            return None
        for permission in self.all_permissions:
            if permission.inherited:
                continue
            return self._change(permission.permission_level)
        if self.permission_level:
            return self._change(self.permission_level)
        return None

    def _change(self, permission_level: str) -> AccessControlChange:
        return AccessControlChange(
            permission_level=permission_level,
            user_name=self.user_name,
            group_name=self.group_name,
            service_principal_name=self.service_principal_name,
        )

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "AccessControl":
        return cls(
            user_name=d.get("user_name") or None,
            group_name=d.get("group_name") or None,
            service_principal_name=d.get("service_principal_name") or None,
            all_permissions=[Permission.from_dict(_) for _ in d.get("all_permissions") or []],
            permission_level=d.get("permission_level"),
        )

    def as_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {_: getattr(self, _) for _ in _PRINCIPAL_FIELDS if getattr(self, _)}
        if self.all_permissions:
            body["all_permissions"] = [_.as_dict() for _ in self.all_permissions]
        if self.permission_level:
            body["permission_level"] = self.permission_level
        return body

    def __str__(self):
        levels = [str(_) for _ in self.all_permissions]
        if self.permission_level:
            levels.append(self.permission_level)
        return f"{self.principal}[{' '.join(levels)}]"


@dataclass
class ObjectACL:
    object_id: str | None = None
    object_type: str | None = None
    access_control_list: list[AccessControl] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ObjectACL":
        return cls(
            object_id=d.get("object_id"),
            object_type=d.get("object_type"),
            access_control_list=[AccessControl.from_dict(_) for _ in d.get("access_control_list") or []],
        )

    def as_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"access_control_list": [_.as_dict() for _ in self.access_control_list]}
        if self.object_id:
            body["object_id"] = self.object_id
        if self.object_type:
            body["object_type"] = self.object_type
        return body

    def direct_changes(self) -> list[AccessControlChange]:
        changes = []
        for access_control in self.access_control_list:
            change = access_control.to_change()
            if change is None:
                continue
            changes.append(change)
        return changes

    def owner(self) -> AccessControlChange | None:
        for change in self.direct_changes():
            if change.permission_level == IS_OWNER:
                return change
        return None

    def to_entity(self, caller: str) -> "PermissionsEntity":
        """Converts the observed state into the shape that is compared against the declared one.

        Raises:
            UnknownObjectType: when the server reports an object type that is not in the registry
        """
        object_type = ObjectType.for_label(self.object_type)
        entity = PermissionsEntity(object_type)
        for access_control in self.access_control_list:
            if access_control.is_inherited_only():
                continue
            if caller in {access_control.user_name, access_control.service_principal_name}:
                continue
            change = access_control.to_change()
            if change is None:
                continue
            entity.add(change)
        return entity


@dataclass
class PermissionsEntity:
    """Deduplicated principal to permission level pairs, one per principal"""

    object_type: ObjectType
    access_control_list: list[AccessControlChange] = field(default_factory=list)

    def add(self, change: AccessControlChange) -> bool:
        if change.principal_key in {_.principal_key for _ in self.access_control_list}:
            logger.debug(f"Ignoring {change}: principal already present in {self.object_type.value}")
            return False
        self.access_control_list.append(change)
        return True

    def to_change_list(self) -> AccessControlChangeList:
        return to_change_list(self.access_control_list)


def to_change_list(changes: Iterable[AccessControlChange | AccessControl | None]) -> AccessControlChangeList:
    """Builds the wire payload, dropping entries that carry no principal or no level"""
    change_list = AccessControlChangeList()
    for item in changes:
        if isinstance(item, AccessControl):
            item = item.to_change()
        if item is None:
            continue
        change_list.append(item)
    return change_list


@dataclass
class PermissionsDiff:
    to_grant: list[AccessControlChange] = field(default_factory=list)
    to_revoke: list[AccessControlChange] = field(default_factory=list)

    def __bool__(self):
        return bool(self.to_grant or self.to_revoke)

    def __str__(self):
        grant = ", ".join(str(_) for _ in self.to_grant)
        revoke = ", ".join(str(_) for _ in self.to_revoke)
        return f"grant=[{grant}] revoke=[{revoke}]"


def diff(observed: PermissionsEntity, desired: Iterable[AccessControlChange]) -> PermissionsDiff:
    """Compares observed and desired grants.

    The admins group is never compared where it is retained by the platform anyway.
    """

    def comparable(changes: Iterable[AccessControlChange]) -> set[AccessControlChange]:
        if observed.object_type.exempt_from_admin_retention:
            return set(changes)
        return {_ for _ in changes if not _.is_admins}

    current = comparable(observed.access_control_list)
    wanted = comparable(desired)
    return PermissionsDiff(
        to_grant=sorted(wanted - current, key=str),
        to_revoke=sorted(current - wanted, key=str),
    )
