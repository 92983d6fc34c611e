import logging

from databricks.labs.permissions.acl import AccessControl, ObjectACL, Permission

logging.getLogger("tests").setLevel("DEBUG")

DEFAULT_CONFIG = {
    "config.yml": {
        'version': 1,
        'log_level': 'DEBUG',
        'connect': {
            'host': 'foo',
            'token': 'bar',
        },
    },
}

TESTING_USER = "ben"
TESTING_ADMIN_USER = "admin"


def direct(permission_level: str, **principal) -> AccessControl:
    return AccessControl(all_permissions=[Permission(permission_level)], **principal)


def object_acl(object_id: str, object_type: str, *access_control: AccessControl) -> dict:
    return ObjectACL(object_id, object_type, list(access_control)).as_dict()
