import pytest

from assetflow.dsl import task
from assetflow.staleness import expand_braces, expand_sources, glob_base, is_stale, matches, plan_pairs
from assetflow.transforms import Rename, copy

from conftest import write


def test_missing_destination_is_stale(tmp_path):
    src = write(tmp_path / "a.css")
    assert is_stale(src, tmp_path / "out" / "a.css")


def test_newer_source_is_stale(tmp_path):
    src = write(tmp_path / "a.css", mtime=2_000)
    dest = write(tmp_path / "out" / "a.css", mtime=1_000)
    assert is_stale(src, dest)


def test_older_or_equal_source_is_fresh(tmp_path):
    src = write(tmp_path / "a.css", mtime=1_000)
    dest = write(tmp_path / "out" / "a.css", mtime=1_000)
    assert not is_stale(src, dest)
    newer_dest = write(tmp_path / "out" / "b.css", mtime=5_000)
    assert not is_stale(src, newer_dest)


def test_missing_source_is_not_stale(tmp_path):
    assert not is_stale(tmp_path / "gone.css", tmp_path / "out.css")


@pytest.mark.parametrize(
    "pattern,base",
    [
        ("dev/styles/**/*.scss", "dev/styles"),
        ("dev/media/images/*.{png,jpg}", "dev/media/images"),
        ("dev/styles/index.scss", "dev/styles"),
        ("*.html", "."),
    ],
)
def test_glob_base(pattern, base):
    assert glob_base(pattern) == base


def test_expand_braces():
    assert expand_braces("img/*.{png,jpg,gif}") == ["img/*.png", "img/*.jpg", "img/*.gif"]
    assert expand_braces("plain.txt") == ["plain.txt"]


@pytest.mark.parametrize(
    "path,pattern,expected",
    [
        ("dev/styles/index.scss", "dev/styles/**/*.scss", True),
        ("dev/styles/base/_type.scss", "dev/styles/**/*.scss", True),
        ("dev/styles/base/_type.scss", "dev/styles/*.scss", False),
        ("dev/views/index.html", "dev/views/*.html", True),
        ("dev/views/partials/nav.html", "dev/views/*.html", False),
        ("dev/media/images/a.jpg", "dev/media/images/*.{png,jpg,gif}", True),
        ("dev/media/images/a.svg", "dev/media/images/*.{png,jpg,gif}", False),
        ("./a.html", "*.html", True),
    ],
)
def test_matches(path, pattern, expected):
    assert matches(path, pattern) is expected


def test_expand_sources_is_sorted_and_deduplicated(tmp_path):
    for name in ("b.js", "a.js", "c.txt"):
        write(tmp_path / "src" / name)
    found = expand_sources(tmp_path, ["src/*.js", "src/a.js"])
    assert [p.name for p, _ in found] == ["a.js", "b.js"]


def test_plan_pairs_keeps_subdirectories(tmp_path):
    write(tmp_path / "dev" / "styles" / "index.scss")
    write(tmp_path / "dev" / "styles" / "parts" / "nav.scss")
    t = task("styles", "dev/styles/**/*.scss", "build/css", copy)
    pairs = plan_pairs(t, tmp_path)
    assert [(s.relative_to(tmp_path).as_posix(), d.relative_to(tmp_path).as_posix()) for s, d in pairs] == [
        ("dev/styles/index.scss", "build/css/index.scss"),
        ("dev/styles/parts/nav.scss", "build/css/parts/nav.scss"),
    ]


def test_plan_pairs_uses_predicted_output_name(tmp_path):
    write(tmp_path / "dev" / "index.css")
    t = task("styles", "dev/index.css", "build", Rename(basename="styles", suffix=".min"))
    [(_src, dest)] = plan_pairs(t, tmp_path)
    assert dest == tmp_path / "build" / "styles.min.css"


def test_plan_pairs_without_sources_is_empty(tmp_path):
    assert plan_pairs(task("package", needs=[]), tmp_path) == []


def test_explicit_base_overrides_glob_prefix(tmp_path):
    write(tmp_path / "dev" / "a" / "x.txt")
    t = task("flat", "dev/a/*.txt", "out", copy, base="dev")
    [(_src, dest)] = plan_pairs(t, tmp_path)
    assert dest == tmp_path / "out" / "a" / "x.txt"
