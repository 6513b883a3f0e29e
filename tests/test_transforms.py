import sys
from pathlib import Path

import pytest

from assetflow.errors import TransformError
from assetflow.transforms import Command, FileInclude, Inject, Rename, SvgStore, bind, chain, copy, extra_inputs

from conftest import write


def test_copy_keeps_name_and_bytes():
    assert copy(b"\x00\x01", Path("dev/fonts/a.woff")) == [("a.woff", b"\x00\x01")]


def test_rename_basename_and_suffix():
    r = Rename(basename="styles", suffix=".min")
    assert r.output_name(Path("index.css")) == "styles.min.css"
    assert r(b"x", Path("index.css")) == [("styles.min.css", b"x")]


def test_rename_with_callable_basename():
    r = Rename(basename=lambda s: "SVG" + "".join(w.capitalize() for w in s.split("-")))
    assert r.output_name(Path("arrow-left.svg")) == "SVGArrowLeft.svg"


def test_file_include_expands_nested_partials(tmp_path):
    write(tmp_path / "partials" / "head.html", "<head>@@include('meta.html')</head>")
    write(tmp_path / "partials" / "meta.html", "<meta charset=utf-8>")
    inc = bind(FileInclude("partials"), tmp_path)

    [(name, body)] = inc(b"<html>@@include(\"head.html\")</html>", tmp_path / "index.html")

    assert name == "index.html"
    assert body == b"<html><head><meta charset=utf-8></head></html>"


def test_file_include_missing_partial(tmp_path):
    inc = FileInclude(tmp_path)
    with pytest.raises(TransformError, match="missing partial 'nav.html'"):
        inc(b"@@include('nav.html')", tmp_path / "index.html")


def test_file_include_loop(tmp_path):
    write(tmp_path / "a.html", "@@include('b.html')")
    write(tmp_path / "b.html", "@@include('a.html')")
    with pytest.raises(TransformError, match="include loop"):
        FileInclude(tmp_path)(b"@@include('a.html')", tmp_path / "index.html")


def test_file_include_custom_prefix(tmp_path):
    write(tmp_path / "x.html", "X")
    assert FileInclude(tmp_path, prefix="%%")(b"%%include('x.html') @@include('y')", Path("p.html")) == [
        ("p.html", b"X @@include('y')")
    ]


def test_inject_replaces_between_markers(tmp_path):
    write(tmp_path / "build" / "symbols.svg", "<svg/>")
    inj = bind(Inject(source="build/symbols.svg"), tmp_path)
    page = b"<body><!-- inject:svg -->old<!-- endinject --></body>"

    [(_name, body)] = inj(page, Path("index.html"))

    assert body == b"<body><!-- inject:svg --><svg/><!-- endinject --></body>"


def test_inject_missing_source(tmp_path):
    with pytest.raises(TransformError, match="inject source not found"):
        Inject(source=tmp_path / "nope.svg")(b"", Path("index.html"))


def test_chain_threads_names_and_bytes(tmp_path):
    write(tmp_path / "p.html", "P")
    t = chain(FileInclude(tmp_path), Rename(suffix=".min"))
    assert t.output_name(Path("index.html")) == "index.min.html"
    assert t(b"@@include('p.html')", Path("index.html")) == [("index.min.html", b"P")]


def test_chain_rejects_multi_output_stage():
    def split(data, path):
        return [("a", data), ("b", data)]

    with pytest.raises(TransformError, match="2 outputs"):
        chain(split, copy)(b"x", Path("x.txt"))


def test_command_pipes_stdin_to_stdout(tmp_path):
    upper = Command(
        [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read().upper())"],
        extension=".css",
    )
    assert upper.output_name(Path("index.scss")) == "index.css"
    assert upper(b"body{}", tmp_path / "index.scss") == [("index.css", b"BODY{}")]


def test_command_failure_carries_stderr(tmp_path):
    failing = Command([sys.executable, "-c", "import sys; sys.stderr.write('Undefined variable'); sys.exit(65)"])
    with pytest.raises(TransformError, match="Undefined variable"):
        failing(b"", tmp_path / "index.scss")


def test_command_missing_program_has_hint(tmp_path):
    with pytest.raises(TransformError, match="not found"):
        Command(["assetflow-no-such-compiler"])(b"", tmp_path / "a.js")


def test_inject_declares_its_source_as_an_input(tmp_path):
    inj = bind(chain(FileInclude("partials"), Inject(source="build/symbols.svg")), tmp_path)
    assert extra_inputs(inj) == [tmp_path / "build" / "symbols.svg"]
    assert extra_inputs(Rename(inj, suffix=".min")) == [tmp_path / "build" / "symbols.svg"]
    assert extra_inputs(copy) == []


def test_svg_store_builds_symbols_from_renamed_files():
    store = SvgStore(
        Rename(basename=lambda s: "SVG" + "".join(w.capitalize() for w in s.split("-"))),
        name="svg.svg",
    )
    items = [
        (b'<?xml version="1.0"?>\n<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">\n<path d="M1 1"/>\n</svg>\n',
         Path("dev/media/svg/arrow-left.svg")),
        (b"<svg width='10'><circle r='4'/></svg>", Path("dev/media/svg/dot.svg")),
    ]

    [(name, body)] = store.combine(items)

    assert name == "svg.svg"
    assert store.output_name(Path("dev/media/svg/dot.svg")) == "svg.svg"
    assert body.decode() == (
        '<svg xmlns="http://www.w3.org/2000/svg">'
        '<symbol id="SVGArrowLeft" viewBox="0 0 24 24"><path d="M1 1"/></symbol>'
        "<symbol id=\"SVGDot\"><circle r='4'/></symbol>"
        "</svg>"
    )


def test_svg_store_rejects_duplicate_ids():
    items = [(b"<svg></svg>", Path("a/icon.svg")), (b"<svg></svg>", Path("b/icon.svg"))]
    with pytest.raises(TransformError, match="duplicate symbol id 'icon'"):
        SvgStore().combine(items)


def test_svg_store_rejects_non_svg_files():
    with pytest.raises(TransformError, match="no <svg> root element"):
        SvgStore().combine([(b"<html></html>", Path("icon.svg"))])
