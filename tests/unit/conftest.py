from unittest.mock import create_autospec

import pytest
from databricks.labs.blueprint.installation import MockInstallation
from databricks.sdk import WorkspaceClient
from databricks.sdk.service import iam

from databricks.labs.permissions.contexts.workspace import WorkspaceContext

from . import DEFAULT_CONFIG, TESTING_ADMIN_USER


@pytest.fixture
def ws():
    workspace_client = create_autospec(WorkspaceClient)
    workspace_client.current_user.me.return_value = iam.User(user_name=TESTING_ADMIN_USER)
    return workspace_client


@pytest.fixture
def mock_installation() -> MockInstallation:
    return MockInstallation(DEFAULT_CONFIG)


@pytest.fixture
def ctx(ws, mock_installation) -> WorkspaceContext:
    return WorkspaceContext(mock_installation).replace(workspace_client=ws)
