from typing import Annotated

from annotated_types import Ge, Le
from pydantic import PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TASKGRAPH_")

    serialization_secret: str = "supersecretsecret"
    """Secret used for signing stored task snapshots."""

    compression_level: Annotated[int, Ge(1), Le(22)] = 3
    """ zstd compression level used for stored task snapshots."""

    default_task_ttl: PositiveInt = 1500
    """ Ticks a task created through the queue lives for when no ttl is given."""
