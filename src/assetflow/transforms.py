# transforms.py
from __future__ import annotations

import re
import subprocess
from html import escape
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .errors import TransformError

Output = Tuple[str, bytes]

# Shown when a command transform's program is not on PATH.
TOOL_HINTS = {
    "sass": "Install Dart Sass (e.g., npm install -g sass) or fix PATH.",
    "uglifyjs": "Install uglify-js (e.g., npm install -g uglify-js).",
    "terser": "Install terser (e.g., npm install -g terser).",
    "postcss": "Install postcss-cli (e.g., npm install -g postcss-cli).",
    "svgo": "Install svgo (e.g., npm install -g svgo).",
    "esbuild": "Install esbuild (e.g., npm install -g esbuild).",
}

# ---------------------------------------------------------------------
# Transform protocol
# ---------------------------------------------------------------------
# A transform is any callable `(data: bytes, path: Path) -> [(name, bytes)]`.
# Output names are relative to the destination directory of that source.
#
# Optional hooks, looked up with getattr:
#   output_name(path) -> str    predicted primary output (staleness check)
#   bind(root) -> transform     resolve relative paths against the project root
#   inputs() -> [Path]          files read besides the source (staleness check)
#   combine(items) -> outputs   many-to-one: all sources in one call (sprites)
# ---------------------------------------------------------------------


def bind(transform, root: Path):
    """Return `transform` with relative paths resolved against `root`."""
    binder = getattr(transform, "bind", None)
    if callable(binder):
        return binder(root)
    return transform


def extra_inputs(transform) -> List[Path]:
    """Files `transform` reads besides its source; a newer one makes outputs stale."""
    hook = getattr(transform, "inputs", None)
    if callable(hook):
        return list(hook())
    return []


def _primary_name(transform, path: Path) -> str:
    namer = getattr(transform, "output_name", None)
    if callable(namer):
        return namer(path)
    return path.name


def copy(data: bytes, path: Path) -> List[Output]:
    """Copy the source unchanged (fonts, media, root files, vendor scripts)."""
    return [(path.name, data)]


def _decode(data: bytes, path: Path) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise TransformError(f"not valid UTF-8 ({e.reason})", str(path)) from e


# ---------------------------------------------------------------------
# Rename
# ---------------------------------------------------------------------

class Rename:
    """
    Rename the primary output of `inner` (identity copy by default).

    Rename(basename="styles", suffix=".min")      index.css -> styles.min.css
    Rename(basename=lambda s: "SVG" + s.title())  arrow.svg -> SVGArrow.svg
    """

    def __init__(
        self,
        inner=None,
        *,
        basename: Union[str, Callable[[str], str], None] = None,
        prefix: str = "",
        suffix: str = "",
        extension: Optional[str] = None,
    ):
        self.inner = inner or copy
        self.basename = basename
        self.prefix = prefix
        self.suffix = suffix
        self.extension = extension

    def bind(self, root: Path) -> "Rename":
        return Rename(
            bind(self.inner, root),
            basename=self.basename,
            prefix=self.prefix,
            suffix=self.suffix,
            extension=self.extension,
        )

    def _rename(self, name: str) -> str:
        p = Path(name)
        stem, ext = p.stem, p.suffix
        if callable(self.basename):
            stem = self.basename(stem)
        elif self.basename is not None:
            stem = self.basename
        if self.extension is not None:
            ext = self.extension
        return str(p.with_name(f"{self.prefix}{stem}{self.suffix}{ext}"))

    def inputs(self) -> List[Path]:
        return extra_inputs(self.inner)

    def output_name(self, path: Path) -> str:
        return self._rename(_primary_name(self.inner, path))

    def __call__(self, data: bytes, path: Path) -> List[Output]:
        outputs = list(self.inner(data, path))
        if not outputs:
            return outputs
        name, body = outputs[0]
        return [(self._rename(name), body)] + outputs[1:]


# ---------------------------------------------------------------------
# HTML partials
# ---------------------------------------------------------------------

class FileInclude:
    """
    Expand `@@include('partial.html')` directives from a partials directory.

    Includes are resolved recursively; a missing partial or an include loop
    fails the transform.
    """

    def __init__(self, basepath: str | Path, prefix: str = "@@", max_depth: int = 32):
        self.basepath = Path(basepath)
        self.prefix = prefix
        self.max_depth = max_depth
        self._pattern = re.compile(
            re.escape(prefix) + r"include\(\s*['\"]([^'\"]+)['\"]\s*\)"
        )

    def bind(self, root: Path) -> "FileInclude":
        base = self.basepath if self.basepath.is_absolute() else root / self.basepath
        return FileInclude(base, self.prefix, self.max_depth)

    def expand(self, text: str, origin: str, stack: Tuple[str, ...] = ()) -> str:
        if len(stack) > self.max_depth:
            raise TransformError(f"include depth exceeded ({' -> '.join(stack)})", origin)

        def repl(m: "re.Match[str]") -> str:
            name = m.group(1)
            if name in stack:
                raise TransformError(
                    f"include loop: {' -> '.join(stack + (name,))}", origin
                )
            partial = self.basepath / name
            if not partial.is_file():
                raise TransformError(f"missing partial '{name}' in {self.basepath}", origin)
            body = partial.read_text(encoding="utf-8")
            return self.expand(body, origin, stack + (name,))

        return self._pattern.sub(repl, text)

    def __call__(self, data: bytes, path: Path) -> List[Output]:
        text = _decode(data, path)
        return [(path.name, self.expand(text, str(path)).encode("utf-8"))]


class Inject:
    """
    Inject a built file between marker comments, keeping the markers.

        <!-- inject:svg -->...<!-- endinject -->
    """

    def __init__(
        self,
        inner=None,
        *,
        source: str | Path,
        start_tag: str = "<!-- inject:{ext} -->",
        end_tag: str = "<!-- endinject -->",
    ):
        self.inner = inner or copy
        self.source = Path(source)
        self.start_tag = start_tag
        self.end_tag = end_tag

    def bind(self, root: Path) -> "Inject":
        src = self.source if self.source.is_absolute() else root / self.source
        return Inject(bind(self.inner, root), source=src, start_tag=self.start_tag, end_tag=self.end_tag)

    def inputs(self) -> List[Path]:
        return [self.source] + extra_inputs(self.inner)

    def output_name(self, path: Path) -> str:
        return _primary_name(self.inner, path)

    def __call__(self, data: bytes, path: Path) -> List[Output]:
        outputs = list(self.inner(data, path))
        if not outputs:
            return outputs
        if not self.source.is_file():
            raise TransformError(f"inject source not found: {self.source}", str(path))
        payload = self.source.read_text(encoding="utf-8")

        start = self.start_tag.format(ext=self.source.suffix.lstrip("."))
        pattern = re.compile(re.escape(start) + r".*?" + re.escape(self.end_tag), re.DOTALL)
        name, body = outputs[0]
        text = _decode(body, path)
        text = pattern.sub(lambda _m: start + payload + self.end_tag, text)
        return [(name, text.encode("utf-8"))] + outputs[1:]


# ---------------------------------------------------------------------
# External compilers
# ---------------------------------------------------------------------

class Command:
    """
    Pipe the source through an external program (stdin -> stdout).

        Command(["sass", "--stdin", "--style=compressed"], extension=".css")

    `{path}` in an argument is replaced with the source path, for tools that
    need it to resolve imports.
    """

    def __init__(
        self,
        argv: Sequence[str],
        *,
        extension: Optional[str] = None,
        cwd: str | Path | None = None,
        env: Optional[dict] = None,
    ):
        if not argv:
            raise ValueError("Command transform needs a program")
        self.argv = list(argv)
        self.extension = extension
        self.cwd = Path(cwd) if cwd is not None else None
        self.env = env

    def bind(self, root: Path) -> "Command":
        cwd = root if self.cwd is None else (self.cwd if self.cwd.is_absolute() else root / self.cwd)
        return Command(self.argv, extension=self.extension, cwd=cwd, env=self.env)

    def output_name(self, path: Path) -> str:
        if self.extension is None:
            return path.name
        return path.stem + self.extension

    def __call__(self, data: bytes, path: Path) -> List[Output]:
        argv = [a.replace("{path}", str(path)) for a in self.argv]
        try:
            proc = subprocess.run(
                argv,
                input=data,
                capture_output=True,
                cwd=str(self.cwd) if self.cwd else None,
                env=self.env,
            )
        except FileNotFoundError as e:
            tool = argv[0]
            hint = TOOL_HINTS.get(Path(tool).name, f"Install {tool} or fix PATH.")
            raise TransformError(f"{tool} not found. {hint}", str(path)) from e

        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            raise TransformError(
                f"{argv[0]} exited with {proc.returncode}: {stderr[-4000:]}", str(path)
            )
        return [(self.output_name(path), proc.stdout)]


# ---------------------------------------------------------------------
# SVG sprites
# ---------------------------------------------------------------------

_SVG_ROOT = re.compile(r"<svg\b([^>]*)>(.*)</svg\s*>", re.DOTALL | re.IGNORECASE)
_VIEWBOX = re.compile(r"""\bviewBox\s*=\s*(["'])(.*?)\1""")


class SvgStore:
    """
    Merge every matched SVG into one inline sprite of <symbol> elements.

    Each file goes through `inner` first (optimiser, rename); the stem of the
    name it produces becomes the symbol id, so

        SvgStore(Rename(basename=lambda s: "SVG" + s.title()), name="svg.svg")

    turns arrow.svg into <symbol id="SVGArrow" viewBox="...">.
    """

    def __init__(self, inner=None, *, name: str = "symbols.svg"):
        self.inner = inner or copy
        self.name = name

    def bind(self, root: Path) -> "SvgStore":
        return SvgStore(bind(self.inner, root), name=self.name)

    def inputs(self) -> List[Path]:
        return extra_inputs(self.inner)

    def output_name(self, path: Path) -> str:
        return self.name

    def symbol(self, symbol_id: str, text: str, origin: str) -> str:
        m = _SVG_ROOT.search(text)
        if m is None:
            raise TransformError("no <svg> root element", origin)
        attrs, body = m.group(1), m.group(2)
        view_box = _VIEWBOX.search(attrs)
        vb = f' viewBox="{escape(view_box.group(2))}"' if view_box else ""
        return f'<symbol id="{escape(symbol_id)}"{vb}>{body.strip()}</symbol>'

    def combine(self, items: Sequence[Tuple[bytes, Path]]) -> List[Output]:
        symbols: List[str] = []
        seen: dict = {}
        for data, path in items:
            for name, body in self.inner(data, path):
                symbol_id = Path(name).stem
                if symbol_id in seen:
                    raise TransformError(
                        f"duplicate symbol id '{symbol_id}' (also from {seen[symbol_id]})", str(path)
                    )
                seen[symbol_id] = path.name
                symbols.append(self.symbol(symbol_id, _decode(body, path), str(path)))
        sprite = '<svg xmlns="http://www.w3.org/2000/svg">' + "".join(symbols) + "</svg>"
        return [(self.name, sprite.encode("utf-8"))]


# ---------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------

class Chain:
    """Run single-output transforms one after another."""

    def __init__(self, *transforms):
        if not transforms:
            raise ValueError("chain() needs at least one transform")
        self.transforms = list(transforms)

    def bind(self, root: Path) -> "Chain":
        return Chain(*(bind(t, root) for t in self.transforms))

    def inputs(self) -> List[Path]:
        return [p for t in self.transforms for p in extra_inputs(t)]

    def output_name(self, path: Path) -> str:
        for t in self.transforms:
            path = path.with_name(_primary_name(t, path))
        return path.name

    def __call__(self, data: bytes, path: Path) -> List[Output]:
        current = path
        for t in self.transforms:
            outputs = list(t(data, current))
            if len(outputs) != 1:
                raise TransformError(
                    f"{getattr(t, '__name__', type(t).__name__)} produced {len(outputs)} outputs inside a chain",
                    str(path),
                )
            name, data = outputs[0]
            current = current.with_name(name)
        return [(current.name, data)]


def chain(*transforms) -> Chain:
    return Chain(*transforms)
