"""Base Pydantic models for engine elements.

This module defines the foundational model classes used by script rows,
step manifests, filters and plugin definitions. It enforces immutability
and strict schema validation so that a parsed script is deterministic
and cannot be altered while it executes.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Base immutable model for all engine elements.

    Design principles enforced by this model:
        - Immutability: elements cannot be modified after creation.
          Rewrites (for example macro expansion) produce new instances
          through `model_copy(update=...)`.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos in scripts or plugins.

    All engine models must inherit from this class.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )


class DescribedMixin(SchemaModel):
    """Mixin providing element self-documentation.

    The fields defined in this model do not affect execution semantics
    and are used for reporting and diagnostics only.
    """

    title: str | None = Field(
        default=None,
        title='Title',
        description='Short human-readable title of the element.',
    )

    description: str | None = Field(
        default=None,
        title='Description',
        description='Detailed human-readable description of the element.',
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Settings are resolved from the environment and explicit overrides.
    Unknown variables are ignored so that the surrounding environment may
    contain unrelated values.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
