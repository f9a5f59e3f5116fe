"""Resource processing: copy or filter each registered input."""

from __future__ import annotations

import io
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Iterable, TextIO

from ..build.context import BuildContext, FileSystemBuildContext, Resource
from ..core.models import FilterMode, ProcessingMode
from ..rendering.engine import TemplateRenderer
from ..settings import FilterSettings

logger = logging.getLogger(__name__)


class PathPreconditionError(ValueError):
    """Raised when a resource does not live under its source root."""


def relativize(source_dir: Path, target_dir: Path, source_file: Path) -> Path:
    """Map a source file to its location under the target root.

    The absolute source root is stripped from the absolute source path as a
    plain string prefix; no symlinks are resolved.

    Args:
        source_dir: Root the resource was registered from
        target_dir: Root of the output tree
        source_file: Resource path

    Returns:
        Output file path
    """
    root = os.path.abspath(source_dir)
    source = os.path.abspath(source_file)
    if not source.startswith(root):
        raise PathPreconditionError(
            f"Resource {source} is not under source directory {root}"
        )
    relative = source[len(root) :].lstrip("/" + os.sep)
    return Path(target_dir) / relative


class ResourcesProcessor:
    """Copy or filter build resources from a source tree to a target tree."""

    def __init__(
        self,
        build_context: BuildContext | None = None,
        renderer: TemplateRenderer | None = None,
        settings: FilterSettings | None = None,
    ) -> None:
        self.settings = settings or FilterSettings()
        self.build_context = build_context or FileSystemBuildContext(
            file_mode=self.settings.file_mode
        )
        self.renderer = renderer or TemplateRenderer(self.settings)

    def process(
        self,
        source_dir: Path,
        target_dir: Path,
        includes: Iterable[str] | None = None,
        excludes: Iterable[str] | None = None,
        mode: ProcessingMode | None = None,
        encoding: str | None = None,
    ) -> list[Path]:
        """Process every resource under ``source_dir`` matching the patterns.

        Args:
            source_dir: Root of the source resources
            target_dir: Root of the output tree
            includes: Include patterns (defaults to the configured includes)
            excludes: Exclude patterns
            mode: ``FilterMode`` renders resources; ``None``/``CopyMode`` copies
            encoding: Text encoding for filtering (platform default when unset)

        Returns:
            Output file paths, in processing order
        """
        includes = list(includes) if includes else list(self.settings.default_includes)
        excludes = list(excludes or [])
        encoding = encoding or self.settings.encoding

        if isinstance(mode, FilterMode):
            logger.info(f"Filtering resources {source_dir} → {target_dir}")
            resources = [
                metadata.process()
                for metadata in self.build_context.register_inputs(
                    source_dir, includes, excludes
                )
            ]
            scopes: list[Any] | None = mode.scopes
        else:
            logger.info(f"Copying resources {source_dir} → {target_dir}")
            resources = self.build_context.register_and_process_inputs(
                source_dir, includes, excludes
            )
            scopes = None

        outputs = [
            self._process_resource(resource, source_dir, target_dir, scopes, encoding)
            for resource in resources
        ]

        logger.info(f"Successfully processed {len(outputs)} resource(s)")
        return outputs

    def _process_resource(
        self,
        resource: Resource,
        source_dir: Path,
        target_dir: Path,
        scopes: list[Any] | None,
        encoding: str | None,
    ) -> Path:
        output_path = relativize(source_dir, target_dir, resource.path)
        output = resource.associate_output(output_path)

        if scopes is not None:
            with open(
                resource.path, "r", encoding=encoding, newline=""
            ) as reader, output.new_output_stream() as sink, io.TextIOWrapper(
                sink, encoding=encoding, newline=""
            ) as writer:
                self.renderer.filter(reader, writer, scopes, name=str(resource.path))
            logger.debug(f"Filtered {resource.path} → {output_path}")
        else:
            with open(resource.path, "rb") as source, output.new_output_stream() as sink:
                shutil.copyfileobj(source, sink)
            logger.debug(f"Copied {resource.path} → {output_path}")

        return output_path

    def filter(self, reader: TextIO, writer: TextIO, properties: Any) -> TextIO:
        """Render one template stream against ``properties``."""
        return self.renderer.filter(reader, writer, properties)
