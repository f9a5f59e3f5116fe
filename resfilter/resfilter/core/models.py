"""Domain models for resource processing modes and template syntax."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class Delimiters(BaseModel):
    """Markers recognised by the template renderer."""

    model_config = ConfigDict(frozen=True)

    variable_start: str = Field(default="${", min_length=1)
    variable_end: str = Field(default="}", min_length=1)
    block_start: str = Field(default="${%", min_length=1)
    block_end: str = Field(default="%}", min_length=1)
    comment_start: str = Field(default="${#", min_length=1)
    comment_end: str = Field(default="#}", min_length=1)


class CopyMode(BaseModel):
    """Copy every resource byte-for-byte."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["copy"] = "copy"


class FilterMode(BaseModel):
    """Render every resource against a stack of property scopes.

    ``properties`` is the innermost scope; ``parents`` are searched after it,
    in order. Scopes are mappings or objects addressable by attribute.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["filter"] = "filter"
    properties: dict[Any, Any] = Field(default_factory=dict)
    parents: tuple[Any, ...] = ()

    @property
    def scopes(self) -> list[Any]:
        return [self.properties, *self.parents]


ProcessingMode = Annotated[Union[CopyMode, FilterMode], Field(discriminator="kind")]
