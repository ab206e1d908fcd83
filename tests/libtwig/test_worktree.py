from collections.abc import Callable
from pathlib import Path, PurePosixPath

from libtwig.exceptions import CorruptObjectError
from libtwig.ignore import IgnoreRules
from libtwig.objects import TreeRecordType
from libtwig.plumbing import get_content_path, load_tree, save_blob
from libtwig.worktree import (build_tree, flatten_tree, local_changes, materialize_tree, update_working_tree,
                              working_tree_map)
from pytest import raises

type WriteFiles = Callable[[Path, dict[str, str]], None]


def test_build_tree_is_deterministic(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    first = tmp_path / 'first'
    second = tmp_path / 'second'
    write_files(first, {'b.txt': 'b', 'a.txt': 'a', 'dir/c.txt': 'c'})
    write_files(second, {'dir/c.txt': 'c', 'a.txt': 'a', 'b.txt': 'b'})

    assert build_tree(objects_dir, first) == build_tree(objects_dir, second)


def test_build_tree_nests_directories(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    root = tmp_path / 'root'
    write_files(root, {'top.txt': 'top', 'dir/sub/deep.txt': 'deep'})

    tree = load_tree(objects_dir, build_tree(objects_dir, root))

    assert tree.records['top.txt'].type is TreeRecordType.BLOB
    assert tree.records['dir'].type is TreeRecordType.TREE
    assert flatten_tree(objects_dir, build_tree(objects_dir, root)).keys() == {'top.txt', 'dir/sub/deep.txt'}


def test_build_tree_omits_empty_directories(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    root = tmp_path / 'root'
    write_files(root, {'file.txt': 'x'})
    (root / 'empty' / 'nested').mkdir(parents=True)

    tree = load_tree(objects_dir, build_tree(objects_dir, root))

    assert set(tree.records) == {'file.txt'}


def test_build_tree_skips_ignored_paths(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    root = tmp_path / 'root'
    write_files(root, {'keep.txt': 'k', 'skip.log': 's', '.ctl/HEAD': 'h', 'build/out.bin': 'o'})
    (root / '.twigignore').write_text('*.log\nbuild/\n')
    is_ignored = IgnoreRules.from_file(root, always_ignored=('.ctl',))

    files = flatten_tree(objects_dir, build_tree(objects_dir, root, is_ignored))

    assert set(files) == {'keep.txt', '.twigignore'}


def test_build_tree_rejects_non_directory(tmp_path: Path) -> None:
    file = tmp_path / 'file.txt'
    file.write_text('x')

    with raises(NotADirectoryError):
        build_tree(tmp_path / 'objects', file)


def test_working_tree_map_hashes_without_storing(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    root = tmp_path / 'root'
    write_files(root, {'a.txt': 'a', 'dir/b.txt': 'b'})

    files = working_tree_map(root)

    assert not objects_dir.exists()
    assert files == flatten_tree(objects_dir, build_tree(objects_dir, root))


def test_materialize_round_trip(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    source = tmp_path / 'source'
    target = tmp_path / 'target'
    write_files(source, {'a.txt': 'alpha', 'dir/b.txt': 'beta'})

    tree_hash = build_tree(objects_dir, source)
    materialize_tree(objects_dir, tree_hash, target)

    assert (target / 'a.txt').read_text() == 'alpha'
    assert (target / 'dir' / 'b.txt').read_text() == 'beta'
    assert build_tree(objects_dir, target) == tree_hash


def test_materialize_removes_files_not_in_tree(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    source = tmp_path / 'source'
    target = tmp_path / 'target'
    write_files(source, {'a.txt': 'alpha'})
    write_files(target, {'a.txt': 'changed', 'extra.txt': 'x', 'old/nested.txt': 'y', '.ctl/keep': 'z'})

    materialize_tree(objects_dir, build_tree(objects_dir, source), target,
                     IgnoreRules(always_ignored=('.ctl',), root=target))

    assert (target / 'a.txt').read_text() == 'alpha'
    assert not (target / 'extra.txt').exists()
    assert not (target / 'old').exists()
    assert (target / '.ctl' / 'keep').read_text() == 'z'


def test_materialize_with_corrupt_blob_leaves_target_untouched(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    source = tmp_path / 'source'
    target = tmp_path / 'target'
    write_files(source, {'a.txt': 'alpha'})
    write_files(target, {'extra.txt': 'x'})

    tree_hash = build_tree(objects_dir, source)
    blob_hash = flatten_tree(objects_dir, tree_hash)['a.txt']
    get_content_path(objects_dir, blob_hash).write_bytes(b'blob 3\0bad')

    with raises(CorruptObjectError):
        materialize_tree(objects_dir, tree_hash, target)

    assert (target / 'extra.txt').exists()
    assert not (target / 'a.txt').exists()


def test_flatten_tree_with_blob_where_tree_expected_raises(tmp_path: Path) -> None:
    blob_hash = save_blob(tmp_path, b'not a tree')

    with raises(CorruptObjectError):
        flatten_tree(tmp_path, blob_hash)


def test_update_working_tree_touches_only_changed_paths(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    old = tmp_path / 'old'
    new = tmp_path / 'new'
    work = tmp_path / 'work'
    write_files(old, {'same.txt': 's', 'changed.txt': 'v1', 'gone/file.txt': 'g'})
    write_files(new, {'same.txt': 's', 'changed.txt': 'v2', 'added.txt': 'a'})
    write_files(work, {'same.txt': 's', 'changed.txt': 'v1', 'gone/file.txt': 'g', 'untracked.txt': 'u'})

    touched = update_working_tree(objects_dir, work, build_tree(objects_dir, old), build_tree(objects_dir, new))

    assert touched == ['added.txt', 'changed.txt', 'gone/file.txt']
    assert (work / 'changed.txt').read_text() == 'v2'
    assert (work / 'added.txt').read_text() == 'a'
    assert not (work / 'gone').exists()
    assert (work / 'untracked.txt').read_text() == 'u'


def test_ignore_predicate_receives_relative_paths(tmp_path: Path, write_files: WriteFiles) -> None:
    root = tmp_path / 'root'
    write_files(root, {'dir/file.txt': 'x'})
    seen: list[PurePosixPath] = []

    def record(path: PurePosixPath) -> bool:
        seen.append(path)
        return False

    build_tree(tmp_path / 'objects', root, record)

    assert seen == [PurePosixPath('dir'), PurePosixPath('dir/file.txt')]


def test_materialize_replaces_link_instead_of_writing_through_it(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    source = tmp_path / 'source'
    target = tmp_path / 'target'
    outside = tmp_path / 'outside.txt'
    write_files(source, {'a.txt': 'tracked', 'dir/b.txt': 'nested'})
    outside.write_text('keep me')
    (tmp_path / 'outside_dir').mkdir()
    target.mkdir()
    (target / 'a.txt').symlink_to(outside)
    (target / 'dir').symlink_to(tmp_path / 'outside_dir', target_is_directory=True)

    materialize_tree(objects_dir, build_tree(objects_dir, source), target)

    assert outside.read_text() == 'keep me'
    assert not (tmp_path / 'outside_dir' / 'b.txt').exists()
    assert not (target / 'a.txt').is_symlink()
    assert (target / 'a.txt').read_text() == 'tracked'
    assert not (target / 'dir').is_symlink()
    assert (target / 'dir' / 'b.txt').read_text() == 'nested'


def test_update_working_tree_replaces_link_instead_of_writing_through_it(tmp_path: Path,
                                                                         write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    old = tmp_path / 'old'
    new = tmp_path / 'new'
    work = tmp_path / 'work'
    outside = tmp_path / 'outside.txt'
    write_files(old, {'keep.txt': 'k'})
    write_files(new, {'keep.txt': 'k', 'a.txt': 'new', 'dir/b.txt': 'nested'})
    write_files(work, {'keep.txt': 'k'})
    outside.write_text('keep me')
    (tmp_path / 'outside_dir').mkdir()
    (work / 'a.txt').symlink_to(outside)
    (work / 'dir').symlink_to(tmp_path / 'outside_dir', target_is_directory=True)

    update_working_tree(objects_dir, work, build_tree(objects_dir, old), build_tree(objects_dir, new))

    assert outside.read_text() == 'keep me'
    assert not (tmp_path / 'outside_dir' / 'b.txt').exists()
    assert (work / 'a.txt').read_text() == 'new'
    assert (work / 'dir' / 'b.txt').read_text() == 'nested'


def test_local_changes_reports_only_paths_the_move_touches(tmp_path: Path, write_files: WriteFiles) -> None:
    objects_dir = tmp_path / 'objects'
    old = tmp_path / 'old'
    new = tmp_path / 'new'
    work = tmp_path / 'work'
    write_files(old, {'same.txt': 's', 'changed.txt': 'v1', 'removed.txt': 'r', 'edited.txt': 'e'})
    write_files(new, {'same.txt': 's', 'changed.txt': 'v2', 'added.txt': 'a', 'edited.txt': 'e'})
    old_tree = build_tree(objects_dir, old)
    new_tree = build_tree(objects_dir, new)

    write_files(work, {'same.txt': 'local', 'changed.txt': 'v1', 'removed.txt': 'r', 'edited.txt': 'local'})
    assert local_changes(objects_dir, work, old_tree, new_tree) == []

    write_files(work, {'changed.txt': 'local', 'added.txt': 'untracked'})
    (work / 'removed.txt').unlink()
    assert local_changes(objects_dir, work, old_tree, new_tree) == ['added.txt', 'changed.txt', 'removed.txt']
