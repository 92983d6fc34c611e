import logging
import sys
from functools import cached_property

from databricks.labs.blueprint.installation import Installation
from databricks.sdk import WorkspaceClient

from databricks.labs.permissions.__about__ import __version__
from databricks.labs.permissions.api import PermissionsAPI
from databricks.labs.permissions.config import PermissionsConfig
from databricks.labs.permissions.invariants import PermissionInvariants
from databricks.labs.permissions.resolver import CreatorLookup, PathResolver
from databricks.labs.permissions.resource import PermissionsResource

if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

logger = logging.getLogger(__name__)


class WorkspaceContext:
    """Wires the reconciliation components together for a single workspace"""

    def __init__(self, installation: Installation):
        self._installation = installation

    def replace(self, **kwargs) -> Self:
        """Replace cached properties for unit testing purposes."""
        for key, value in kwargs.items():
            self.__dict__[key] = value
        return self

    @cached_property
    def config(self) -> PermissionsConfig:
        config = self._installation.load(PermissionsConfig)
        if config.log_level:
            logging.getLogger("databricks.labs.permissions").setLevel(config.log_level)
        return config

    @cached_property
    def workspace_client(self) -> WorkspaceClient:
        return WorkspaceClient(
            config=self.config.to_databricks_config(),
            product="permissions",
            product_version=__version__,
        )

    @cached_property
    def path_resolver(self) -> PathResolver:
        return PathResolver(self.workspace_client)

    @cached_property
    def creator_lookup(self) -> CreatorLookup:
        return CreatorLookup(self.workspace_client)

    @cached_property
    def permission_invariants(self) -> PermissionInvariants:
        return PermissionInvariants(self.creator_lookup)

    @cached_property
    def permissions_api(self) -> PermissionsAPI:
        return PermissionsAPI(self.workspace_client, self.permission_invariants)

    @cached_property
    def permissions_resource(self) -> PermissionsResource:
        return PermissionsResource(
            self.workspace_client,
            self.path_resolver,
            self.permission_invariants,
            self.permissions_api,
        )
