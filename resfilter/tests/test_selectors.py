"""Tests for include/exclude matching."""

from resfilter.build.selectors import compile_pattern, iter_selected_files, matches_any


def test_double_star_spans_directories():
    pattern = compile_pattern("**/*.txt")

    assert pattern.match("a.txt")
    assert pattern.match("x/y/a.txt")
    assert not pattern.match("a.txtx")


def test_single_star_stays_in_segment():
    assert compile_pattern("*.txt").match("a.txt")
    assert not compile_pattern("*.txt").match("x/a.txt")


def test_question_mark_matches_one_character():
    assert compile_pattern("a/?.md").match("a/b.md")
    assert not compile_pattern("a/?.md").match("a/bc.md")


def test_trailing_slash_matches_whole_directory():
    assert compile_pattern("docs/").match("docs/a/b.html")
    assert not compile_pattern("docs/").match("other/docs.html")


def test_inner_double_star():
    pattern = compile_pattern("src/**/main.py")

    assert pattern.match("src/main.py")
    assert pattern.match("src/a/b/main.py")
    assert not pattern.match("lib/main.py")


def test_matches_any():
    assert matches_any("a/b.xml", ["**/*.txt", "**/*.xml"])
    assert not matches_any("a/b.xml", [])


def test_iter_selected_files(tmp_path):
    for rel in ["b.txt", "a/c.txt", "a/skip.txt", "a/d.bin"]:
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(rel)

    selected = [rel for _, rel in iter_selected_files(tmp_path, ["**/*.txt"], ["**/skip.*"])]

    assert selected == ["a/c.txt", "b.txt"]


def test_iter_selected_files_defaults_to_everything(tmp_path):
    (tmp_path / "x").mkdir()
    (tmp_path / "x" / "y.bin").write_bytes(b"\0")

    assert [rel for _, rel in iter_selected_files(tmp_path, None, None)] == ["x/y.bin"]


def test_iter_selected_files_missing_root(tmp_path):
    assert list(iter_selected_files(tmp_path / "absent", None, None)) == []
