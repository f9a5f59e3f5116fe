from __future__ import annotations

import codecs

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .build.selectors import DEFAULT_INCLUDES
from .core.models import Delimiters


class FilterSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RESFILTER_", case_sensitive=False)

    encoding: str | None = None
    strict_undefined: bool = True
    file_mode: int = 0o644

    variable_start: str = "${"
    variable_end: str = "}"
    block_start: str = "${%"
    block_end: str = "%}"
    comment_start: str = "${#"
    comment_end: str = "#}"

    default_includes: list[str] = Field(default_factory=lambda: list(DEFAULT_INCLUDES))

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        try:
            return codecs.lookup(value.strip()).name
        except LookupError as e:
            raise ValueError(f"Unknown encoding: {value!r}") from e

    def delimiters(self) -> Delimiters:
        return Delimiters(
            variable_start=self.variable_start,
            variable_end=self.variable_end,
            block_start=self.block_start,
            block_end=self.block_end,
            comment_start=self.comment_start,
            comment_end=self.comment_end,
        )
