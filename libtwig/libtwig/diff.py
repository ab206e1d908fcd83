"""Per-path comparison of flattened trees and unified text diffs."""

import difflib
from collections import defaultdict
from collections.abc import Generator, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .plumbing import load_blob
from .ref import HashRef

type TreeMap = Mapping[str, HashRef]

# Only this many leading bytes are inspected when deciding whether content is binary
FIRST_FEW_BYTES = 8000
NO_NEWLINE_MARKER = b'\\ No newline at end of file\n'
DEV_NULL = b'/dev/null'


class ChangeKind(Enum):
    ADDED = 'added'
    DELETED = 'deleted'
    MODIFIED = 'modified'


@dataclass(frozen=True)
class FileChange:
    """A change to a single file between two trees."""

    path: str
    kind: ChangeKind
    old_hash: HashRef | None
    new_hash: HashRef | None


def compare_trees(*trees: TreeMap) -> Generator[tuple[str, list[HashRef | None]], None, None]:
    """Yield every path present in any of the trees along with its blob hash in each (None where absent)."""
    entries: defaultdict[str, list[HashRef | None]] = defaultdict(lambda: [None] * len(trees))
    for i, tree in enumerate(trees):
        for path, blob_hash in tree.items():
            entries[path][i] = blob_hash

    for path in sorted(entries):
        yield path, entries[path]


def changed_files(t_from: TreeMap, t_to: TreeMap) -> list[FileChange]:
    changes: list[FileChange] = []
    for path, (o_from, o_to) in compare_trees(t_from, t_to):
        if o_from == o_to:
            continue
        kind = (ChangeKind.ADDED if o_from is None else
                ChangeKind.DELETED if o_to is None else
                ChangeKind.MODIFIED)
        changes.append(FileChange(path, kind, o_from, o_to))
    return changes


def is_binary(content: bytes) -> bool:
    return b'\0' in content[:FIRST_FEW_BYTES]


def diff_blobs(objects_dir: Path, o_from: str | None, o_to: str | None, path: str) -> bytes:
    """Render the change of one file as a unified diff with ``a/`` and ``b/`` labels.

    A missing side is labelled ``/dev/null`` and diffed as empty content. Binary content is
    reported with a single summary line instead of hunks.

    :raises ObjectNotFoundError: If either digest is not stored."""
    old = load_blob(objects_dir, o_from) if o_from else b''
    new = load_blob(objects_dir, o_to) if o_to else b''
    from_label = f'a/{path}'.encode() if o_from else DEV_NULL
    to_label = f'b/{path}'.encode() if o_to else DEV_NULL

    if is_binary(old) or is_binary(new):
        return b'Binary files ' + from_label + b' and ' + to_label + b' differ\n'

    output = b''
    for line in difflib.diff_bytes(difflib.unified_diff, old.splitlines(keepends=True),
                                   new.splitlines(keepends=True), from_label, to_label):
        output += line if line.endswith(b'\n') else line + b'\n' + NO_NEWLINE_MARKER
    return output


def diff_trees(objects_dir: Path, t_from: TreeMap, t_to: TreeMap) -> bytes:
    """Concatenate the unified diffs of every path that differs between two flattened trees, in path order."""
    output = b''
    for path, (o_from, o_to) in compare_trees(t_from, t_to):
        if o_from != o_to:
            output += diff_blobs(objects_dir, o_from, o_to, path)
    return output
