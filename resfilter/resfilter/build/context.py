"""Build context boundary: input registration and output association."""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Protocol

from .io import atomic_output
from .selectors import iter_selected_files

logger = logging.getLogger(__name__)


class Output(Protocol):
    path: Path

    def new_output_stream(self) -> AbstractContextManager[BinaryIO]: ...


class Resource(Protocol):
    path: Path

    def associate_output(self, path: Path) -> Output: ...


class ResourceMetadata(Protocol):
    path: Path
    relative_path: str

    def process(self) -> Resource: ...


class BuildContext(Protocol):
    """Input registration as exposed by an incremental build engine."""

    def register_inputs(
        self,
        source_dir: Path,
        includes: Iterable[str] | None,
        excludes: Iterable[str] | None,
    ) -> list[ResourceMetadata]: ...

    def register_and_process_inputs(
        self,
        source_dir: Path,
        includes: Iterable[str] | None,
        excludes: Iterable[str] | None,
    ) -> list[Resource]: ...


@dataclass(frozen=True)
class FileOutput:
    path: Path
    file_mode: int = 0o644

    def new_output_stream(self) -> AbstractContextManager[BinaryIO]:
        return atomic_output(self.path, mode=self.file_mode)


@dataclass(frozen=True)
class FileResource:
    path: Path
    context: FileSystemBuildContext = field(repr=False, compare=False)

    def associate_output(self, path: Path) -> FileOutput:
        return self.context.associate(self.path, path)


@dataclass(frozen=True)
class FileResourceMetadata:
    path: Path
    relative_path: str
    context: FileSystemBuildContext = field(repr=False, compare=False)

    def process(self) -> FileResource:
        logger.debug(f"Processing input: {self.relative_path}")
        return FileResource(path=self.path, context=self.context)


class FileSystemBuildContext:
    """Non-incremental build context backed directly by the file system.

    Every matched file is treated as changed. Associated outputs are recorded
    per input so callers can inspect what a run produced.
    """

    def __init__(self, file_mode: int = 0o644) -> None:
        self.file_mode = file_mode
        self.outputs: dict[Path, list[Path]] = {}

    def register_inputs(
        self,
        source_dir: Path,
        includes: Iterable[str] | None,
        excludes: Iterable[str] | None,
    ) -> list[FileResourceMetadata]:
        root = Path(source_dir).absolute()
        inputs = [
            FileResourceMetadata(path=path, relative_path=rel_posix, context=self)
            for path, rel_posix in iter_selected_files(root, includes, excludes)
        ]
        logger.debug(f"Registered {len(inputs)} input(s) under {root}")
        return inputs

    def register_and_process_inputs(
        self,
        source_dir: Path,
        includes: Iterable[str] | None,
        excludes: Iterable[str] | None,
    ) -> list[FileResource]:
        return [
            metadata.process()
            for metadata in self.register_inputs(source_dir, includes, excludes)
        ]

    def associate(self, input_path: Path, output_path: Path) -> FileOutput:
        self.outputs.setdefault(input_path, []).append(output_path)
        return FileOutput(path=output_path, file_mode=self.file_mode)
