"""Three-way merge of blobs and trees."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from merge3 import Merge3

from .exceptions import MergeConflictError
from .objects import Tree, TreeRecord, TreeRecordType
from .plumbing import load_blob, load_commit, load_tree, save_blob, save_tree
from .ref import HashRef

logger = logging.getLogger(__name__)

CONFLICT_START = '<<<<<<<'
CONFLICT_MIDDLE = '======='
CONFLICT_END = '>>>>>>>'


@dataclass(frozen=True)
class MergedText:
    """Output of a line-based merge: the merged text and whether it contains conflict markers."""

    text: str
    conflict: bool


type TextMerger = Callable[[str, str, str], MergedText]


def _ensure_newline(lines: list[str]) -> list[str]:
    if lines and not lines[-1].endswith('\n'):
        return [*lines[:-1], lines[-1] + '\n']
    return lines


def merge3_text(base: str, ours: str, theirs: str,
                ours_label: str = 'ours', theirs_label: str = 'theirs') -> MergedText:
    """Merge three versions of a text with merge3, marking conflicting regions.

    :param base: The common ancestor version.
    :param ours: Our version.
    :param theirs: Their version.
    :return: The merged text and whether any region conflicted."""
    merger = Merge3(base.splitlines(keepends=True),
                    ours.splitlines(keepends=True),
                    theirs.splitlines(keepends=True))

    output: list[str] = []
    conflict = False
    for group in merger.merge_groups():
        match group:
            case ('unchanged' | 'same' | 'a' | 'b', lines):
                output.extend(lines)
            case ('conflict', _, ours_lines, theirs_lines):
                conflict = True
                output.append(f'{CONFLICT_START} {ours_label}\n')
                output.extend(_ensure_newline(list(ours_lines)))
                output.append(f'{CONFLICT_MIDDLE}\n')
                output.extend(_ensure_newline(list(theirs_lines)))
                output.append(f'{CONFLICT_END} {theirs_label}\n')

    return MergedText(''.join(output), conflict)


def merge_blob_text(
    objects_dir: Path,
    base_hash: str | None,
    ours_hash: str,
    theirs_hash: str,
    text_merger: TextMerger = merge3_text,
) -> tuple[HashRef, bool]:
    """Merge three versions of a blob.

    Hashes are compared first so that content is only read when both sides changed.
    Content that is not UTF-8 text cannot be merged line by line; it is reported as a
    conflict and our version is kept.

    :param objects_dir: The objects directory of the repository.
    :param base_hash: The common ancestor blob, or None if the file did not exist there.
    :param ours_hash: Our version of the blob.
    :param theirs_hash: Their version of the blob.
    :param text_merger: The line-based merge capability.
    :return: The merged blob hash and whether it conflicted."""
    if ours_hash == theirs_hash:
        return HashRef(ours_hash), False
    if base_hash is not None and ours_hash == base_hash:
        return HashRef(theirs_hash), False
    if base_hash is not None and theirs_hash == base_hash:
        return HashRef(ours_hash), False

    try:
        base_text = load_blob(objects_dir, base_hash).decode() if base_hash else ''
        ours_text = load_blob(objects_dir, ours_hash).decode()
        theirs_text = load_blob(objects_dir, theirs_hash).decode()
    except UnicodeDecodeError:
        logger.debug('Binary content in %s / %s, keeping ours', ours_hash, theirs_hash)
        return HashRef(ours_hash), True

    merged = text_merger(base_text, ours_text, theirs_text)
    return save_blob(objects_dir, merged.text.encode()), merged.conflict


def records_match(record1: TreeRecord | None, record2: TreeRecord | None) -> bool:
    if record1 is None or record2 is None:
        return record1 is record2
    return record1.type == record2.type and record1.hash == record2.hash


def _subtree(objects_dir: Path, record: TreeRecord | None) -> Tree | None:
    if record is None or record.type is not TreeRecordType.TREE:
        return None
    return load_tree(objects_dir, record.hash)


def merge_trees_core(
    objects_dir: Path,
    base_tree: Tree | None,
    ours_tree: Tree | None,
    theirs_tree: Tree | None,
    path_prefix: str,
    conflicts: list[str],
    text_merger: TextMerger = merge3_text,
) -> HashRef | None:
    """Merge trees recursively and return the merged tree hash, or None if nothing survives the merge.

    Entry presence follows the same three-way rule as content: an entry changed (or
    added, or removed) on one side only takes that side; identical changes are kept;
    divergent blob changes are merged line by line; any other divergence is a conflict
    that keeps the surviving side."""
    merged_records: dict[str, TreeRecord] = {}
    base_records = base_tree.records if base_tree else {}
    ours_records = ours_tree.records if ours_tree else {}
    theirs_records = theirs_tree.records if theirs_tree else {}

    for name in sorted(set(base_records) | set(ours_records) | set(theirs_records)):
        base_record = base_records.get(name)
        ours_record = ours_records.get(name)
        theirs_record = theirs_records.get(name)
        path = f'{path_prefix}/{name}' if path_prefix else name

        if records_match(ours_record, theirs_record):
            chosen = ours_record
        elif records_match(base_record, ours_record):
            chosen = theirs_record
        elif records_match(base_record, theirs_record):
            chosen = ours_record
        elif (ours_record and theirs_record
              and ours_record.type is TreeRecordType.TREE and theirs_record.type is TreeRecordType.TREE):
            subtree_hash = merge_trees_core(objects_dir,
                                            _subtree(objects_dir, base_record),
                                            load_tree(objects_dir, ours_record.hash),
                                            load_tree(objects_dir, theirs_record.hash),
                                            path, conflicts, text_merger)
            chosen = TreeRecord(TreeRecordType.TREE, subtree_hash, name) if subtree_hash else None
        elif (ours_record and theirs_record
              and ours_record.type is TreeRecordType.BLOB and theirs_record.type is TreeRecordType.BLOB):
            base_hash = base_record.hash if base_record and base_record.type is TreeRecordType.BLOB else None
            merged_hash, conflict = merge_blob_text(objects_dir, base_hash, ours_record.hash, theirs_record.hash,
                                                    text_merger)
            if conflict:
                conflicts.append(path)
            chosen = TreeRecord(TreeRecordType.BLOB, merged_hash, name)
        else:
            # Modified on one side and deleted on the other, or a file replaced by a directory
            chosen = ours_record or theirs_record
            conflicts.append(path)

        if chosen is not None:
            merged_records[name] = chosen

    if not merged_records and path_prefix:
        return None
    return save_tree(objects_dir, Tree(merged_records))


@dataclass
class TreeMergeResult:
    """Represents the output of a 3-way tree merge."""

    tree_hash: HashRef
    conflicts: list[str]


def merge_trees(objects_dir: Path, base_tree_hash: str | None, ours_tree_hash: str, theirs_tree_hash: str,
                text_merger: TextMerger = merge3_text) -> TreeMergeResult:
    """Merge two trees against a common base tree (None for an empty base)."""
    conflicts: list[str] = []
    tree_hash = merge_trees_core(objects_dir,
                                 load_tree(objects_dir, base_tree_hash) if base_tree_hash else None,
                                 load_tree(objects_dir, ours_tree_hash),
                                 load_tree(objects_dir, theirs_tree_hash),
                                 '', conflicts, text_merger)
    return TreeMergeResult(tree_hash, conflicts)


def merge_commits_core(objects_dir: Path, base_hash: str, ours_hash: str, theirs_hash: str,
                       text_merger: TextMerger = merge3_text) -> TreeMergeResult:
    """Perform a 3-way merge of the trees of two commits against the tree of their base commit."""
    base_commit = load_commit(objects_dir, base_hash)
    ours_commit = load_commit(objects_dir, ours_hash)
    theirs_commit = load_commit(objects_dir, theirs_hash)

    result = merge_trees(objects_dir, base_commit.tree_hash, ours_commit.tree_hash, theirs_commit.tree_hash,
                         text_merger)
    if result.conflicts:
        logger.warning('Merge conflicts detected in %d files', len(result.conflicts))
    return result


class MergeOutcome(Enum):
    UP_TO_DATE = 'up-to-date'
    FAST_FORWARD = 'fast-forward'
    MERGED = 'merged'
    CONFLICT = 'conflict'


@dataclass
class MergeResult:
    """Outcome of merging a commit into HEAD."""

    outcome: MergeOutcome
    ours: HashRef
    theirs: HashRef
    base: HashRef
    commit: HashRef | None = None
    tree_hash: HashRef | None = None
    conflicts: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is not MergeOutcome.CONFLICT

    def raise_for_conflicts(self) -> None:
        """Raise `MergeConflictError` if the merge left conflicted paths."""
        if self.conflicts:
            raise MergeConflictError(self.conflicts)
