import databricks.sdk.useragent as ua
from databricks.labs.blueprint.logger import install_logger

from databricks.labs.permissions.__about__ import __version__

install_logger()

# Add permissions/<version> for projects depending on this one as a library
ua.with_extra("permissions", __version__)
