from dataclasses import dataclass

from databricks.sdk.core import Config

__all__ = ["PermissionsConfig"]


@dataclass
class PermissionsConfig:
    __file__ = "config.yml"
    __version__ = 1

    connect: Config | None = None
    log_level: str | None = "INFO"

    def to_databricks_config(self) -> Config:
        if self.connect is None:
            # fall back to the environment and ~/.databrickscfg
            return Config()
        return self.connect
