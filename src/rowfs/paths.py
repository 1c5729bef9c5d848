"""Path normalization and the trailing annotation micro-syntax.

Paths are slash-delimited and always stored normalized: no leading or
trailing slash, no empty or ``.`` segments, ``..`` resolved. The project
root is the empty string.

Annotation text follows a path on the command line:

    // a side note for humans
    @@tag1, tag2
    ::payload for automation::

The first whitespace-separated token that starts with a marker wins and
consumes the rest of the string. One marker per call.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rowfs.errors import InvalidPathError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

SEP = "/"

NOTE_MARKER = "//"
TAG_MARKER = "@@"
CONTROL_MARKER = "::"

# Checked in this order for each token.
_MARKERS = (NOTE_MARKER, TAG_MARKER, CONTROL_MARKER)

_TOKEN_RE = re.compile(r"\S+")


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def normalize_path(raw: str) -> str:
    """Return the canonical form of ``raw``; ``""`` is the root."""
    parts: list[str] = []
    for seg in raw.split(SEP):
        if seg in ("", "."):
            continue
        if seg == "..":
            if not parts:
                raise InvalidPathError(f"path escapes the project root: {raw!r}", path=raw)
            parts.pop()
            continue
        parts.append(seg)
    return SEP.join(parts)


def parent_path(path: str) -> str:
    head, _, _ = path.rpartition(SEP)
    return head


def leaf_name(path: str) -> str:
    return path.rpartition(SEP)[2]


def join_path(*parts: str) -> str:
    return SEP.join(p for p in parts if p)


def iter_prefixes(path: str) -> Iterator[str]:
    """Yield every ancestor-or-self of ``path``, shortest first.

    >>> list(iter_prefixes("a/b/c"))
    ['a', 'a/b', 'a/b/c']
    """
    if not path:
        return
    cur = ""
    for seg in path.split(SEP):
        cur = join_path(cur, seg)
        yield cur


def is_within(path: str, ancestor: str) -> bool:
    """True if ``path`` is ``ancestor`` or one of its descendants."""
    if not ancestor:
        return True
    return path == ancestor or path.startswith(ancestor + SEP)


def rebase(path: str, old: str, new: str) -> str:
    """Move ``path`` from under ``old`` to under ``new``."""
    if path == old:
        return new
    if not is_within(path, old):
        raise InvalidPathError(f"{path!r} is not under {old!r}", path=path)
    tail = path[len(old) + 1 :] if old else path
    return join_path(new, tail)


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Meta:
    """Parsed annotation: at most one of the three parts is set per parse."""

    note: str = ""
    tags: tuple[str, ...] = ()
    control: str = ""

    def __bool__(self) -> bool:
        return bool(self.note or self.tags or self.control)


def parse_meta(text: str | Sequence[str] | None) -> Meta:
    """Parse trailing annotation text (a string or the raw argv words)."""
    if text is None:
        return Meta()
    if not isinstance(text, str):
        text = " ".join(text)
    for tok in _TOKEN_RE.finditer(text):
        for marker in _MARKERS:
            if tok.group().startswith(marker):
                rest = text[tok.start() + len(marker) :]
                return _consume(marker, rest)
    return Meta()


def _consume(marker: str, rest: str) -> Meta:
    if marker == NOTE_MARKER:
        return Meta(note=rest.strip())
    if marker == TAG_MARKER:
        tags = tuple(t.strip() for t in rest.split(",") if t.strip())
        return Meta(tags=tags)
    close = rest.rfind(CONTROL_MARKER)
    if close >= 0:
        rest = rest[:close]
    return Meta(control=rest.strip())
