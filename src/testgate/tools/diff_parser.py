"""Extract changed files from git-style unified diffs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

_DIFF_GIT_PREFIX = "diff --git "
_NEW_FILE_PREFIX = "new file mode "
_DELETED_FILE_PREFIX = "deleted file mode "
_RENAME_FROM_PREFIX = "rename from "
_RENAME_TO_PREFIX = "rename to "

PATCH_MARKER_BEGIN = "<!-- BEGIN TESTGATE PATCH -->"
PATCH_MARKER_END = "<!-- END TESTGATE PATCH -->"

# Single-character escapes understood inside git's quoted paths.
_SIMPLE_ESCAPES = {
    "n": b"\n",
    "t": b"\t",
    "r": b"\r",
    "b": b"\b",
    "f": b"\f",
    "v": b"\v",
    "\\": b"\\",
    '"': b'"',
}
_OCTAL_DIGITS = frozenset("01234567")


class ChangeType(str, Enum):
    """Kind of change a diff section describes."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(slots=True, frozen=True)
class ChangedFile:
    """A single file touched by a diff.

    ``path`` is the post-image path, except for deletions where it is the
    pre-image path. ``old_path`` is only set for renames.
    """

    path: str
    change_type: ChangeType
    old_path: str | None = None


@dataclass(slots=True, frozen=True)
class DiffAnalysis:
    """Deduplicated list of files touched by a diff."""

    files: tuple[ChangedFile, ...] = ()

    @property
    def paths(self) -> list[str]:
        return [entry.path for entry in self.files]

    @property
    def touched_paths(self) -> list[str]:
        """Return ``paths`` plus the pre-image paths of renames."""
        touched = self.paths
        for entry in self.files:
            if entry.old_path and entry.old_path not in touched:
                touched.append(entry.old_path)
        return touched


@dataclass(slots=True)
class _SectionState:
    a_path: str
    b_path: str
    change_type: ChangeType = ChangeType.MODIFIED
    old_path: str | None = None

    def finish(self) -> ChangedFile:
        path = self.a_path if self.change_type is ChangeType.DELETED else self.b_path
        return ChangedFile(path=path, change_type=self.change_type, old_path=self.old_path)


def normalise_diff_path(path: str) -> str:
    """Return ``path`` with forward slashes and no leading ``./``."""
    normalised = path.replace("\\", "/").strip()
    while normalised.startswith("./"):
        normalised = normalised[2:]
    return normalised


def decode_quoted_path(body: str) -> str:
    """Decode the inside of a git ``"..."`` quoted path.

    Octal escapes (one to three digits) contribute raw bytes, so multi-byte
    UTF-8 sequences written as ``\\343\\201\\202`` decode back into the
    original characters.
    """
    buffer = bytearray()
    index = 0
    length = len(body)
    while index < length:
        char = body[index]
        if char != "\\" or index + 1 >= length:
            buffer.extend(char.encode("utf-8"))
            index += 1
            continue

        escaped = body[index + 1]
        if escaped in _OCTAL_DIGITS:
            end = index + 1
            while end < length and end < index + 4 and body[end] in _OCTAL_DIGITS:
                end += 1
            buffer.append(int(body[index + 1 : end], 8) & 0xFF)
            index = end
            continue

        simple = _SIMPLE_ESCAPES.get(escaped)
        if simple is not None:
            buffer.extend(simple)
        else:
            buffer.extend(escaped.encode("utf-8"))
        index += 2
    return buffer.decode("utf-8", errors="replace")


def split_header_tokens(rest: str) -> list[str]:
    """Split the operands of a ``diff --git`` line into path tokens."""
    tokens: list[str] = []
    index = 0
    length = len(rest)
    while index < length:
        while index < length and rest[index] == " ":
            index += 1
        if index >= length:
            break

        if rest[index] == '"':
            index += 1
            start = index
            while index < length:
                if rest[index] == "\\" and index + 1 < length:
                    index += 2
                    continue
                if rest[index] == '"':
                    break
                index += 1
            tokens.append(decode_quoted_path(rest[start:index]))
            index += 1
            continue

        start = index
        while index < length and rest[index] != " ":
            index += 1
        tokens.append(rest[start:index])
    return tokens


def _parse_header(rest: str) -> tuple[str, str] | None:
    tokens = split_header_tokens(rest)
    if len(tokens) < 2:
        return None
    a_token, b_token = tokens[0], tokens[1]
    if not a_token.startswith("a/") or not b_token.startswith("b/"):
        return None
    return normalise_diff_path(a_token[2:]), normalise_diff_path(b_token[2:])


def _marker_path(raw: str) -> str:
    candidate = raw.strip()
    if len(candidate) >= 2 and candidate.startswith('"') and candidate.endswith('"'):
        candidate = decode_quoted_path(candidate[1:-1])
    return normalise_diff_path(candidate)


def _dedupe(records: Iterable[ChangedFile]) -> tuple[ChangedFile, ...]:
    deduped: dict[str, ChangedFile] = {}
    for record in records:
        existing = deduped.get(record.path)
        if existing is None:
            deduped[record.path] = record
        elif existing.change_type is not ChangeType.RENAMED and record.change_type is ChangeType.RENAMED:
            deduped[record.path] = record
    return tuple(deduped.values())


def parse_unified_diff(diff_text: str) -> DiffAnalysis:
    """Collect the files touched by ``diff_text``.

    Only ``diff --git`` sections are recognised. Headers that cannot be
    tokenised into ``a/`` and ``b/`` paths are skipped together with their
    marker lines.
    """
    records: list[ChangedFile] = []
    current: _SectionState | None = None

    for raw_line in (diff_text or "").split("\n"):
        line = raw_line[:-1] if raw_line.endswith("\r") else raw_line

        if line.startswith(_DIFF_GIT_PREFIX):
            if current is not None:
                records.append(current.finish())
            paths = _parse_header(line[len(_DIFF_GIT_PREFIX) :])
            current = _SectionState(a_path=paths[0], b_path=paths[1]) if paths else None
            continue

        if current is None:
            continue

        if line.startswith(_NEW_FILE_PREFIX):
            current.change_type = ChangeType.ADDED
        elif line.startswith(_DELETED_FILE_PREFIX):
            current.change_type = ChangeType.DELETED
        elif line.startswith(_RENAME_FROM_PREFIX):
            current.change_type = ChangeType.RENAMED
            current.old_path = _marker_path(line[len(_RENAME_FROM_PREFIX) :])
        elif line.startswith(_RENAME_TO_PREFIX):
            current.change_type = ChangeType.RENAMED

    if current is not None:
        records.append(current.finish())

    return DiffAnalysis(files=_dedupe(records))


def extract_changed_paths(analysis: DiffAnalysis) -> list[str]:
    """Return the changed paths of ``analysis`` in diff order."""
    return analysis.paths


def extract_patch_from_logs(raw_logs: str) -> str | None:
    """Return the patch an agent wrapped in TESTGATE markers, if any."""
    start = raw_logs.find(PATCH_MARKER_BEGIN)
    if start == -1:
        return None
    body_start = start + len(PATCH_MARKER_BEGIN)
    end = raw_logs.find(PATCH_MARKER_END, body_start)
    if end == -1:
        return None
    return raw_logs[body_start:end].strip()


__all__ = [
    "ChangeType",
    "ChangedFile",
    "DiffAnalysis",
    "PATCH_MARKER_BEGIN",
    "PATCH_MARKER_END",
    "decode_quoted_path",
    "extract_changed_paths",
    "extract_patch_from_logs",
    "normalise_diff_path",
    "parse_unified_diff",
    "split_header_tokens",
]
