# staleness.py
from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Tuple

from .model import Task

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# A destination is stale when it is missing or older than its source.
# That is the whole caching policy: no content hashing, no manifest.
#
# Globs are matched segment-wise:
#   *      any run of characters except "/"
#   ?      one character except "/"
#   **/    zero or more directories
#   {a,b}  alternatives (not nested)
# ---------------------------------------------------------------------

_MAGIC = set("*?[{")


def is_stale(source: str | Path, dest: str | Path) -> bool:
    """
    True if `dest` does not exist or `source` was modified after it.

    A missing source is not stale: there is nothing to build from.
    """
    try:
        src_mtime = Path(source).stat().st_mtime_ns
    except FileNotFoundError:
        return False
    try:
        dest_mtime = Path(dest).stat().st_mtime_ns
    except FileNotFoundError:
        return True
    return src_mtime > dest_mtime


def is_glob(pattern: str) -> bool:
    return any(ch in _MAGIC for ch in pattern)


def expand_braces(pattern: str) -> List[str]:
    """'img/*.{png,jpg}' -> ['img/*.png', 'img/*.jpg']"""
    m = re.search(r"\{([^{}]*)\}", pattern)
    if not m:
        return [pattern]
    head, tail = pattern[: m.start()], pattern[m.end():]
    out: List[str] = []
    for alt in m.group(1).split(","):
        out.extend(expand_braces(head + alt + tail))
    return out


def glob_base(pattern: str) -> str:
    """
    Static directory prefix of a glob ("dev/styles/**/*.scss" -> "dev/styles").
    For a literal path, its parent directory.
    """
    parts = PurePosixPath(pattern.replace("\\", "/")).parts
    static: List[str] = []
    for part in parts:
        if is_glob(part):
            break
        static.append(part)
    else:
        static = static[:-1]
    if not static:
        return "."
    return str(PurePosixPath(*static))


@lru_cache(maxsize=512)
def _compile(pattern: str) -> "re.Pattern[str]":
    i, n = 0, len(pattern)
    out = []
    while i < n:
        c = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        if c == "*":
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = pattern.find("]", i + 1)
            if j == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : j]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = j + 1
                continue
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z")


def matches(path: str, pattern: str) -> bool:
    """Match a relative POSIX path against a glob (used for watch bindings)."""
    path = path.replace("\\", "/")
    if path.startswith("./"):
        path = path[2:]
    for pat in expand_braces(pattern.replace("\\", "/")):
        if pat.startswith("./"):
            pat = pat[2:]
        if _compile(pat).match(path):
            return True
    return False


def _expand_one(root: Path, pattern: str) -> Iterable[Tuple[Path, Path]]:
    """Yield (file, base dir) for one brace-free pattern."""
    base = Path(glob_base(pattern))
    base_dir = base if base.is_absolute() else root / base

    if not is_glob(pattern):
        p = Path(pattern)
        p = p if p.is_absolute() else root / p
        if p.is_file():
            yield p, base_dir
        elif p.is_dir():
            for f in sorted(p.rglob("*")):
                if f.is_file():
                    yield f, p
        return

    rest = str(PurePosixPath(pattern.replace("\\", "/")).relative_to(glob_base(pattern)))
    if not base_dir.is_dir():
        return
    for f in sorted(base_dir.glob(rest)):
        if f.is_file():
            yield f, base_dir


def expand_sources(
    root: str | Path,
    patterns: Iterable[str],
    base: Optional[str] = None,
) -> List[Tuple[Path, Path]]:
    """
    Expand source globs into (file, base dir) pairs.

    Deterministic: sorted per pattern, first occurrence wins on duplicates.
    An explicit `base` overrides each glob's own static prefix.
    """
    root_p = Path(root)
    forced_base: Optional[Path] = None
    if base is not None:
        b = Path(base)
        forced_base = b if b.is_absolute() else root_p / b

    seen = set()
    out: List[Tuple[Path, Path]] = []
    for pattern in patterns:
        pattern = pattern.strip()
        if not pattern:
            continue
        for pat in expand_braces(pattern):
            for f, b in _expand_one(root_p, pat):
                key = str(f.resolve())
                if key in seen:
                    continue
                seen.add(key)
                out.append((f, forced_base or b))
    return out


def output_name(transform, source: Path) -> str:
    """Predicted primary output name of `transform` for `source`."""
    namer = getattr(transform, "output_name", None)
    if callable(namer):
        return namer(source)
    return source.name


def destination_dir(task: Task, root: str | Path) -> Path:
    """The task's destination directory, resolved against `root`."""
    dest_dir = Path(task.destination or ".")
    return dest_dir if dest_dir.is_absolute() else Path(root) / dest_dir


def plan_pairs(task: Task, root: str | Path) -> List[Tuple[Path, Path]]:
    """(source, destination file) pairs for every file the task's globs match."""
    if not task.sources:
        return []
    root_p = Path(root)
    dest_dir = destination_dir(task, root_p)

    pairs: List[Tuple[Path, Path]] = []
    for src, base in expand_sources(root_p, task.sources, task.base):
        try:
            rel_parent = src.parent.relative_to(base)
        except ValueError:
            rel_parent = Path()
        pairs.append((src, dest_dir / rel_parent / output_name(task.transform, src)))
    return pairs


def newest(paths: Iterable[Path]) -> Optional[Path]:
    """The most recently modified existing path, if any."""
    best: Optional[Path] = None
    best_mtime = -1
    for p in paths:
        try:
            m = p.stat().st_mtime_ns
        except FileNotFoundError:
            continue
        if m > best_mtime:
            best, best_mtime = p, m
    return best
