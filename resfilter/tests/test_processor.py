"""Tests for the resource processor."""

import io
from pathlib import Path

import pytest

from resfilter.build.context import FileSystemBuildContext
from resfilter.core.models import CopyMode, FilterMode
from resfilter.pipeline.processor import (
    PathPreconditionError,
    ResourcesProcessor,
    relativize,
)
from resfilter.rendering.engine import UnresolvedPlaceholderError


def write(root: Path, rel: str, data: bytes) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def output_files(root: Path) -> list[str]:
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())


def test_relativize_replaces_source_prefix():
    assert relativize(Path("/src"), Path("/out"), Path("/src/a/b.txt")) == Path("/out/a/b.txt")


def test_relativize_rejects_foreign_resource():
    with pytest.raises(PathPreconditionError):
        relativize(Path("/src"), Path("/out"), Path("/elsewhere/a.txt"))


def test_copy_mode_is_byte_exact(tmp_path):
    source, target = tmp_path / "src", tmp_path / "out"
    payload = bytes(range(256)) * 4
    write(source, "bin/data.bin", payload)
    write(source, "conf/app.properties", b"version=${project.version}\r\n")

    outputs = ResourcesProcessor().process(source, target)

    assert outputs == [target / "bin/data.bin", target / "conf/app.properties"]
    assert (target / "bin/data.bin").read_bytes() == payload
    assert (target / "conf/app.properties").read_bytes() == b"version=${project.version}\r\n"


def test_explicit_copy_mode(tmp_path):
    source, target = tmp_path / "src", tmp_path / "out"
    write(source, "a.txt", b"${untouched}")

    ResourcesProcessor().process(source, target, mode=CopyMode())

    assert (target / "a.txt").read_bytes() == b"${untouched}"


def test_filter_mode_renders_resources(tmp_path):
    source, target = tmp_path / "src", tmp_path / "out"
    write(source, "conf/app.properties", b"version=${project.version}\nname=${project.name}\n")
    mode = FilterMode(
        properties={"project.version": "1.2.3"},
        parents=({"project": {"name": "demo"}},),
    )

    ResourcesProcessor().process(source, target, mode=mode, encoding="utf-8")

    assert (target / "conf/app.properties").read_text(encoding="utf-8") == (
        "version=1.2.3\nname=demo\n"
    )


def test_filter_mode_with_empty_properties_still_renders(tmp_path):
    source, target = tmp_path / "src", tmp_path / "out"
    write(source, "a.txt", b"${% if true %}yes${% endif %}")

    ResourcesProcessor().process(source, target, mode=FilterMode())

    assert (target / "a.txt").read_text() == "yes"


def test_filter_mode_round_trips_encoding(tmp_path):
    source, target = tmp_path / "src", tmp_path / "out"
    write(source, "a.txt", "é=${v}\r\n".encode("latin-1"))

    ResourcesProcessor().process(
        source, target, mode=FilterMode(properties={"v": "ü"}), encoding="latin-1"
    )

    assert (target / "a.txt").read_bytes() == "é=ü\r\n".encode("latin-1")


def test_includes_and_excludes(tmp_path):
    source, target = tmp_path / "src", tmp_path / "out"
    write(source, "a.txt", b"a")
    write(source, "sub/b.txt", b"b")
    write(source, "sub/c.bin", b"c")
    write(source, "sub/skip.txt", b"s")

    ResourcesProcessor().process(source, target, ["**/*.txt"], ["**/skip.txt"])

    assert output_files(target) == ["a.txt", "sub/b.txt"]


def test_unresolved_placeholder_aborts_without_output(tmp_path):
    source, target = tmp_path / "src", tmp_path / "out"
    resource = write(source, "app.properties", b"v=${missing.key}\n")

    with pytest.raises(UnresolvedPlaceholderError) as exc_info:
        ResourcesProcessor().process(source, target, mode=FilterMode(properties={}))

    assert exc_info.value.placeholder == "missing.key"
    assert exc_info.value.template_name == str(resource)
    assert output_files(target) == []


def test_missing_source_file_propagates(tmp_path):
    class VanishingContext(FileSystemBuildContext):
        def register_and_process_inputs(self, source_dir, includes, excludes):
            resources = super().register_and_process_inputs(source_dir, includes, excludes)
            for resource in resources:
                resource.path.unlink()
            return resources

    source, target = tmp_path / "src", tmp_path / "out"
    write(source, "a.txt", b"a")

    with pytest.raises(FileNotFoundError):
        ResourcesProcessor(build_context=VanishingContext()).process(source, target)


def test_build_context_records_outputs(tmp_path):
    source, target = tmp_path / "src", tmp_path / "out"
    resource = write(source, "x/y.txt", b"y")
    context = FileSystemBuildContext()

    ResourcesProcessor(build_context=context).process(source, target)

    assert context.outputs == {resource: [target / "x/y.txt"]}


def test_filter_helper_renders_stream():
    out = io.StringIO()

    ResourcesProcessor().filter(io.StringIO("${a.b}"), out, {"a.b": "exact"})

    assert out.getvalue() == "exact"


def test_resource_outside_source_root_fails(tmp_path):
    stray = write(tmp_path / "elsewhere", "stray.txt", b"s")

    class ForeignContext(FileSystemBuildContext):
        def register_and_process_inputs(self, source_dir, includes, excludes):
            return [
                metadata.process()
                for metadata in self.register_inputs(stray.parent, includes, excludes)
            ]

    source, target = tmp_path / "src", tmp_path / "out"
    source.mkdir()

    with pytest.raises(PathPreconditionError):
        ResourcesProcessor(build_context=ForeignContext()).process(source, target)

    assert not target.exists()
