"""Conversion between a working directory and tree objects."""

import logging
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path, PurePosixPath

from .constants import SHORT_HASH_LENGTH
from .objects import Blob, Tree, TreeRecord, TreeRecordType, hash_object
from .plumbing import load_blob, load_tree, save_file_content, save_tree
from .ref import HashRef

logger = logging.getLogger(__name__)

type IgnorePredicate = Callable[[PurePosixPath], bool]

ROOT = PurePosixPath()


def _never_ignored(_: PurePosixPath) -> bool:
    return False


def _iter_entries(root: Path, rel: PurePosixPath, is_ignored: IgnorePredicate) -> Iterator[tuple[Path, PurePosixPath]]:
    for item in sorted((root / rel).iterdir()):
        item_rel = rel / item.name
        if is_ignored(item_rel):
            logger.debug('Skipping ignored path %s', item_rel)
            continue
        if item.is_symlink():
            logger.debug('Skipping symbolic link %s', item_rel)
            continue
        yield item, item_rel


def _build_records(objects_dir: Path, root: Path, rel: PurePosixPath,
                   is_ignored: IgnorePredicate) -> dict[str, TreeRecord]:
    records: dict[str, TreeRecord] = {}
    for item, item_rel in _iter_entries(root, rel, is_ignored):
        if item.is_file():
            records[item.name] = TreeRecord(TreeRecordType.BLOB, save_file_content(objects_dir, item), item.name)
        elif item.is_dir():
            sub_records = _build_records(objects_dir, root, item_rel, is_ignored)
            # Directories without tracked content are not recorded
            if sub_records:
                sub_hash = save_tree(objects_dir, Tree(sub_records))
                records[item.name] = TreeRecord(TreeRecordType.TREE, sub_hash, item.name)
    return records


def build_tree(objects_dir: Path, root: Path, is_ignored: IgnorePredicate = _never_ignored) -> HashRef:
    """Store the content of a directory hierarchy and return its top-level tree digest.

    Regular files become blobs, sub-directories become nested trees. Paths matched by the
    ignore predicate (called with paths relative to `root`) are skipped, and directories
    left without any tracked file are omitted.

    :param objects_dir: The objects directory of the repository.
    :param root: The directory to snapshot.
    :param is_ignored: Predicate over paths relative to `root`.
    :return: The digest of the top-level tree.
    :raises NotADirectoryError: If `root` is not a directory."""
    if not root or not root.is_dir():
        msg = f'{root} is not a directory'
        raise NotADirectoryError(msg)

    return save_tree(objects_dir, Tree(_build_records(objects_dir, root, ROOT, is_ignored)))


def working_tree_map(root: Path, is_ignored: IgnorePredicate = _never_ignored) -> dict[str, HashRef]:
    """Map every tracked file under `root` to the blob digest of its content, without storing anything."""
    result: dict[str, HashRef] = {}
    pending = [ROOT]
    while pending:
        rel = pending.pop()
        for item, item_rel in _iter_entries(root, rel, is_ignored):
            if item.is_file():
                result[str(item_rel)] = hash_object(Blob(item.read_bytes()))
            elif item.is_dir():
                pending.append(item_rel)
    return result


def flatten_tree(objects_dir: Path, tree_hash: str | None, prefix: PurePosixPath = ROOT) -> dict[str, HashRef]:
    """Map every file path of a tree (recursively) to its blob digest.

    :raises CorruptObjectError: If a tree entry does not resolve to a tree where one is expected."""
    if not tree_hash:
        return {}

    result: dict[str, HashRef] = {}
    for record in load_tree(objects_dir, tree_hash).sorted_records():
        path = prefix / record.name
        match record.type:
            case TreeRecordType.BLOB:
                result[str(path)] = record.hash
            case TreeRecordType.TREE:
                result.update(flatten_tree(objects_dir, record.hash, path))
    return result


def _load_contents(objects_dir: Path, files: Mapping[str, HashRef]) -> dict[str, bytes]:
    return {path: load_blob(objects_dir, blob_hash) for path, blob_hash in files.items()}


def _unlink_linked_parents(root: Path, rel: PurePosixPath) -> None:
    for parent in reversed(rel.parents):
        if parent != ROOT and (root / parent).is_symlink():
            (root / parent).unlink()


def _write_file(root: Path, path: str, data: bytes) -> None:
    rel = PurePosixPath(path)
    # Never write through a link, whether it sits at the path or at one of its directories
    _unlink_linked_parents(root, rel)

    dest = root / rel
    if dest.is_symlink():
        dest.unlink()
    elif dest.is_file() and dest.read_bytes() == data:
        return
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(data)


def _remove_empty_parents(root: Path, rel: PurePosixPath) -> None:
    for parent in rel.parents:
        if parent == ROOT:
            break
        directory = root / parent
        if not directory.is_dir() or any(directory.iterdir()):
            break
        directory.rmdir()


def _prune(root: Path, rel: PurePosixPath, keep_files: set[str], keep_dirs: set[str],
           is_ignored: IgnorePredicate) -> None:
    for item in list((root / rel).iterdir()):
        item_rel = rel / item.name
        if is_ignored(item_rel):
            continue

        key = str(item_rel)
        if item.is_symlink():
            # Links are never tracked, so a tracked path must become a regular file
            item.unlink()
        elif item.is_dir():
            _prune(root, item_rel, keep_files, keep_dirs, is_ignored)
            if key not in keep_dirs and not any(item.iterdir()):
                item.rmdir()
        elif key not in keep_files:
            item.unlink()


def materialize_tree(objects_dir: Path, tree_hash: str, target: Path,
                     is_ignored: IgnorePredicate = _never_ignored) -> None:
    """Make `target` match a tree exactly.

    This is a destructive sync: files on disk that are not part of the tree are removed and
    uncommitted changes are overwritten. Ignored paths are left untouched. All objects are
    read and validated before the directory is modified.

    :raises CorruptObjectError: If an entry does not resolve to an object of the expected kind.
    :raises ObjectNotFoundError: If an entry refers to a missing object."""
    files = flatten_tree(objects_dir, tree_hash)
    contents = _load_contents(objects_dir, files)

    keep_dirs = {str(parent) for path in files for parent in PurePosixPath(path).parents if parent != ROOT}
    target.mkdir(parents=True, exist_ok=True)
    _prune(target, ROOT, set(files), keep_dirs, is_ignored)

    for path, data in contents.items():
        _write_file(target, path, data)

    logger.info('Materialized tree %s (%d files) into %s', tree_hash[:SHORT_HASH_LENGTH], len(files), target)


def update_working_tree(objects_dir: Path, root: Path, from_tree: str | None, to_tree: str) -> list[str]:
    """Move a working directory from one tree to another, touching only the paths that differ.

    Files that are not tracked by either tree are preserved.

    :return: The paths that were written or removed."""
    old_files = flatten_tree(objects_dir, from_tree)
    new_files = flatten_tree(objects_dir, to_tree)
    contents = _load_contents(objects_dir, {path: blob_hash for path, blob_hash in new_files.items()
                                            if old_files.get(path) != blob_hash})

    removed = sorted(old_files.keys() - new_files.keys())
    for path in removed:
        _unlink_linked_parents(root, PurePosixPath(path))
        (root / path).unlink(missing_ok=True)
        _remove_empty_parents(root, PurePosixPath(path))

    for path, data in contents.items():
        _write_file(root, path, data)

    return sorted([*removed, *contents])


def local_changes(objects_dir: Path, root: Path, from_tree: str | None, to_tree: str,
                  is_ignored: IgnorePredicate = _never_ignored) -> list[str]:
    """List the paths that moving `root` from one tree to another would clobber.

    A path is reported when the two trees disagree on it and the working directory does not
    hold what `from_tree` records there: a modified or deleted tracked file, or an untracked
    file where `to_tree` puts one."""
    old_files = flatten_tree(objects_dir, from_tree)
    new_files = flatten_tree(objects_dir, to_tree)
    touched = {path for path in old_files.keys() | new_files.keys() if old_files.get(path) != new_files.get(path)}
    if not touched:
        return []

    current = working_tree_map(root, is_ignored)
    return sorted(path for path in touched if current.get(path) != old_files.get(path))
