from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from databricks.labs.permissions.acl import ADMINS_GROUP, AccessControlChange
from databricks.labs.permissions.errors import InvalidConfig
from databricks.labs.permissions.object_types import DeclaredIdentifier, classify

ACCESS_CONTROL = "access_control"
_PRINCIPALS = ("user_name", "group_name", "service_principal_name")


def parse_access_control(raw: Sequence[Mapping[str, Any]] | None) -> list[AccessControlChange]:
    """Validates declared access control entries before anything is sent to the platform"""
    if not raw:
        raise InvalidConfig([(ACCESS_CONTROL, "Missing required argument")])
    problems = []
    changes = []
    for entry in raw:
        principals = [_ for _ in _PRINCIPALS if entry.get(_)]
        if len(principals) != 1:
            problems.append((ACCESS_CONTROL, f"exactly one of {', '.join(_PRINCIPALS)} must be set"))
            continue
        if entry.get("group_name") == ADMINS_GROUP:
            problems.append((ACCESS_CONTROL, f"It is not possible to restrict any permissions from `{ADMINS_GROUP}`."))
            continue
        if not entry.get("permission_level"):
            problems.append((ACCESS_CONTROL, f"Missing permission_level for {entry[principals[0]]}"))
            continue
        changes.append(AccessControlChange.from_dict(dict(entry)))
    if problems:
        raise InvalidConfig(problems)
    return changes


def check_caller(changes: Sequence[AccessControlChange], caller: str):
    for change in changes:
        if change.user_name != caller:
            continue
        msg = f"it is not possible to decrease administrative permissions for the current user: {caller}"
        raise InvalidConfig([(ACCESS_CONTROL, msg)])


@dataclass
class Declaration:
    """Exactly one identifier of the object, and the access control entries wanted on it"""

    identifier: DeclaredIdentifier
    access_control: list[AccessControlChange]

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "Declaration":
        identifier = classify(raw)
        return cls(identifier, parse_access_control(raw.get(ACCESS_CONTROL)))
