"""libtwig repository management."""

import logging
import shutil
from collections.abc import Callable, Generator
from dataclasses import dataclass
from datetime import datetime
from functools import partial, wraps
from pathlib import Path
from typing import Concatenate

from .constants import (DEFAULT_BRANCH, DEFAULT_REPO_DIR, HEAD_ALIASES, HEADS_DIR, HEAD_FILE, IGNORE_FILE,
                        MERGE_HEAD_FILE, OBJECTS_SUBDIR, REFS_DIR, SHORT_HASH_LENGTH, TAGS_DIR)
from .diff import FileChange, changed_files, diff_trees
from .exceptions import (RefError, RefExistsError, RepositoryError, RepositoryNotFoundError, UncommittedChangesError,
                         UnknownRefError)
from .graph import commits_to_replay, is_ancestor, is_fast_forward, iter_ancestors, lowest_common_ancestor
from .ignore import IgnoreRules
from .merge import MergeOutcome, MergeResult, TextMerger, TreeMergeResult, merge3_text, merge_commits_core
from .objects import Commit, TwigObject
from .plumbing import load_commit, load_object, object_exists, save_commit, save_file_content
from .rebase import RebaseOutcome, RebaseResult, replay_commits
from .ref import HashRef, Ref, SymRef, is_hash, read_ref, write_ref
from .worktree import (build_tree, flatten_tree, local_changes, materialize_tree, update_working_tree,
                       working_tree_map)

logger = logging.getLogger(__name__)

BRANCH_PREFIX = f'{REFS_DIR}/{HEADS_DIR}/'
TAG_PREFIX = f'{REFS_DIR}/{TAGS_DIR}/'


@dataclass
class LogEntry:
    """A class representing a log entry for a branch or commit history."""

    commit_ref: HashRef
    commit: Commit


@dataclass
class Tag:
    """Represents an immutable label that points to a commit."""

    name: str
    target: HashRef


def _short(commit_hash: str) -> str:
    return commit_hash[:SHORT_HASH_LENGTH]


def _is_safe_ref_path(name: str) -> bool:
    # Each component must name an entry below the repository directory
    return all(part not in ('', '.', '..') for part in name.split('/'))


def validate_ref_name(name: str) -> None:
    """Check that a branch or tag name can be stored under the refs directory.

    :raises ValueError: If the name is empty.
    :raises RefError: If the name is not a valid ref name."""
    if not name:
        msg = 'Ref name is required'
        raise ValueError(msg)
    if (name in HEAD_ALIASES or name.startswith('-') or any(c.isspace() for c in name)
            or not _is_safe_ref_path(name)):
        msg = f'Invalid ref name: {name!r}'
        raise RefError(msg)


class Repository:
    """Represents a libtwig repository.

    A repository is an explicit handle on one working directory and its control directory;
    nothing is kept in process-wide state, so several repositories can be used side by side.
    All operations run synchronously and assume a single writer."""

    def __init__(self, working_dir: Path | str, repo_dir: Path | str | None = None,
                 ignore_file: str = IGNORE_FILE, text_merger: TextMerger | None = None) -> None:
        """Initialize a Repository instance. The repository is not created on disk until `init()` is called.

        :param working_dir: The working directory where the repository will be located.
        :param repo_dir: The name of the repository directory within the working directory. Defaults to '.twig'.
        :param ignore_file: The name of the ignore file at the root of the working directory.
        :param text_merger: Line-based merge capability. Defaults to merge3 with branch labels."""
        self.working_dir = Path(working_dir)
        self.repo_dir = Path(DEFAULT_REPO_DIR) if repo_dir is None else Path(repo_dir)
        self.ignore_file = ignore_file
        self.text_merger = text_merger

    def init(self, default_branch: str = DEFAULT_BRANCH) -> None:
        """Initialize a new repository in the working directory.

        :param default_branch: The name of the default branch to create. Defaults to 'main'.
        :raises RepositoryError: If the repository already exists."""
        if self.exists():
            msg = f'Repository already exists at {self.repo_path()}'
            raise RepositoryError(msg)
        validate_ref_name(default_branch)

        self.objects_dir().mkdir(parents=True)
        self.heads_dir().mkdir(parents=True)
        self.tags_dir().mkdir(parents=True)

        write_ref(self.heads_dir() / default_branch, None)
        write_ref(self.head_file(), branch_ref(default_branch))
        logger.info('Initialized empty repository in %s', self.repo_path())

    def exists(self) -> bool:
        """Check if the repository exists in the working directory."""
        return self.repo_path().exists()

    def repo_path(self) -> Path:
        return self.working_dir / self.repo_dir

    def objects_dir(self) -> Path:
        return self.repo_path() / OBJECTS_SUBDIR

    def refs_dir(self) -> Path:
        return self.repo_path() / REFS_DIR

    def heads_dir(self) -> Path:
        return self.refs_dir() / HEADS_DIR

    def tags_dir(self) -> Path:
        return self.refs_dir() / TAGS_DIR

    def head_file(self) -> Path:
        return self.repo_path() / HEAD_FILE

    def merge_head_file(self) -> Path:
        return self.repo_path() / MERGE_HEAD_FILE

    @staticmethod
    def requires_repo[**P, R](func: Callable[Concatenate['Repository', P], R]) -> \
            Callable[Concatenate['Repository', P], R]:
        """Decorate a Repository method to ensure that the repository exists before executing the method.

        :param func: The method to decorate.
        :return: A wrapper function that checks for the repository's existence."""

        @wraps(func)
        def _verify_repo(self: 'Repository', *args: P.args, **kwargs: P.kwargs) -> R:
            if not self.exists():
                msg = f'Repository not initialized at {self.repo_path()}'
                raise RepositoryNotFoundError(msg)

            return func(self, *args, **kwargs)

        return _verify_repo

    @requires_repo
    def delete_repo(self) -> None:
        """Delete the entire repository, including all objects and refs."""
        shutil.rmtree(self.repo_path())

    # HEAD

    @requires_repo
    def head_ref(self) -> Ref:
        """Get the current HEAD reference of the repository.

        :return: A SymRef when HEAD follows a branch, a HashRef when it is detached.
        :raises RepositoryError: If the HEAD file is missing or empty."""
        head_file = self.head_file()
        if not head_file.exists():
            msg = 'HEAD ref file does not exist'
            raise RepositoryError(msg)

        head = read_ref(head_file)
        if head is None:
            msg = 'HEAD ref file is empty'
            raise RepositoryError(msg)
        return head

    @requires_repo
    def head_branch(self) -> str | None:
        """Get the name of the branch HEAD follows, or None if HEAD is detached."""
        head = self.head_ref()
        if isinstance(head, SymRef) and head.startswith(BRANCH_PREFIX):
            return head[len(BRANCH_PREFIX):]
        return None

    @requires_repo
    def head_commit(self) -> HashRef | None:
        """Return the commit HEAD resolves to, or None if HEAD follows an unborn branch."""
        return self._deref(self.head_ref())

    @requires_repo
    def set_head_branch(self, branch: str) -> None:
        """Make HEAD follow a branch.

        :raises UnknownRefError: If the branch does not exist."""
        if not self.branch_exists(branch):
            msg = f'Branch "{branch}" does not exist'
            raise UnknownRefError(msg)
        write_ref(self.head_file(), branch_ref(branch))
        logger.info('HEAD now follows %s', branch)

    @requires_repo
    def set_head_detached(self, target: Ref | str) -> None:
        """Point HEAD directly at a commit."""
        commit_hash = self.resolve_ref(target)
        write_ref(self.head_file(), commit_hash)
        logger.info('HEAD detached at %s', _short(commit_hash))

    def _advance_head(self, commit_hash: HashRef) -> None:
        branch = self.head_branch()
        if branch is None:
            write_ref(self.head_file(), commit_hash)
            logger.info('HEAD moved to %s', _short(commit_hash))
        else:
            self.update_branch(branch, commit_hash)

    # Refs

    def _deref(self, ref: Ref) -> HashRef | None:
        seen: set[str] = set()
        while isinstance(ref, SymRef):
            if ref in seen:
                msg = f'Symbolic reference loop at {ref}'
                raise RefError(msg)
            seen.add(ref)

            if not _is_safe_ref_path(ref):
                msg = f'Reference {ref} does not exist'
                raise UnknownRefError(msg)
            ref_file = self.repo_path() / ref
            if not ref_file.is_file():
                msg = f'Reference {ref} does not exist'
                raise UnknownRefError(msg)
            ref = read_ref(ref_file)
        return ref

    @requires_repo
    def refs(self, prefix: str = '') -> list[tuple[str, HashRef]]:
        """List the refs whose name starts with `prefix`, with the commit each points to.

        Unborn branches are not listed.

        :return: Sorted (name, commit hash) pairs, e.g. ``('refs/heads/main', '...')``.
        :raises RepositoryError: If the refs directory does not exist or is not a directory."""
        refs_dir = self.refs_dir()
        if not refs_dir.exists() or not refs_dir.is_dir():
            msg = f'Refs directory does not exist or is not a directory: {refs_dir}'
            raise RepositoryError(msg)

        result: list[tuple[str, HashRef]] = []
        for ref_file in sorted(refs_dir.rglob('*')):
            if not ref_file.is_file():
                continue
            name = ref_file.relative_to(self.repo_path()).as_posix()
            if not name.startswith(prefix):
                continue
            value = self._deref(SymRef(name))
            if value is not None:
                result.append((name, value))
        return result

    @requires_repo
    def resolve_ref(self, ref: Ref | str) -> HashRef:
        """Resolve a branch name, tag name, ref path, HEAD or literal digest to a commit hash.

        Names are tried as ``HEAD``, ``refs/heads/<name>``, ``refs/tags/<name>``, ``refs/<name>`` and
        as a full ref path before falling back to a literal digest of a stored object.

        :raises UnknownRefError: If the reference does not resolve."""
        match ref:
            case HashRef():
                if not object_exists(self.objects_dir(), ref):
                    msg = f'Object {ref} does not exist'
                    raise UnknownRefError(msg)
                return ref
            case SymRef():
                resolved = self._deref(ref)
            case str():
                resolved = self._resolve_name(ref)
            case _:
                msg = f'Invalid reference type: {type(ref)}'
                raise UnknownRefError(msg)

        if resolved is None:
            msg = f'Reference {ref} does not point to a commit yet'
            raise UnknownRefError(msg)
        return resolved

    def _resolve_name(self, name: str) -> HashRef | None:
        if name in HEAD_ALIASES:
            return self._deref(self.head_ref())

        if not _is_safe_ref_path(name):
            msg = f'Unknown reference: {name}'
            raise UnknownRefError(msg)

        for candidate in (f'{BRANCH_PREFIX}{name}', f'{TAG_PREFIX}{name}', f'{REFS_DIR}/{name}', name):
            if candidate.startswith(f'{REFS_DIR}/') and (self.repo_path() / candidate).is_file():
                return self._deref(SymRef(candidate))

        if is_hash(name) and object_exists(self.objects_dir(), name):
            return HashRef(name)

        msg = f'Unknown reference: {name}'
        raise UnknownRefError(msg)

    # Branches

    @requires_repo
    def branch_exists(self, branch: str) -> bool:
        return bool(branch) and (self.heads_dir() / branch).is_file()

    @requires_repo
    def branches(self) -> list[str]:
        """Get a sorted list of all branch names in the repository, including unborn ones."""
        heads_dir = self.heads_dir()
        return sorted(x.relative_to(heads_dir).as_posix() for x in heads_dir.rglob('*') if x.is_file())

    @requires_repo
    def add_branch(self, branch: str, target: Ref | str | None = None, orphan: bool = False) -> None:
        """Add a new branch to the repository.

        :param branch: The name of the branch to add.
        :param target: The commit the branch points to. Defaults to the HEAD commit.
        :param orphan: Create the branch unborn, without any commit.
        :raises ValueError: If the branch name is empty.
        :raises RefExistsError: If the branch already exists.
        :raises UnknownRefError: If the target cannot be resolved."""
        validate_ref_name(branch)
        if self.branch_exists(branch):
            msg = f'Branch "{branch}" already exists'
            raise RefExistsError(msg)

        commit_hash = None
        if not orphan:
            commit_hash = self.resolve_ref(target) if target is not None else self.head_commit()
            if commit_hash is not None:
                load_commit(self.objects_dir(), commit_hash)

        write_ref(self.heads_dir() / branch, commit_hash)
        logger.info('Created branch %s at %s', branch, _short(commit_hash) if commit_hash else '(unborn)')

    @requires_repo
    def update_branch(self, branch: str, target: Ref | str) -> None:
        """Point a branch at a commit, unconditionally overwriting its current value.

        :raises CorruptObjectError: If `target` names an object that is not a commit."""
        validate_ref_name(branch)
        commit_hash = self.resolve_ref(target)
        load_commit(self.objects_dir(), commit_hash)
        write_ref(self.heads_dir() / branch, commit_hash)
        logger.info('Branch %s now at %s', branch, _short(commit_hash))

    @requires_repo
    def delete_branch(self, branch: str) -> None:
        """Delete a branch from the repository.

        :raises ValueError: If the branch name is empty.
        :raises UnknownRefError: If the branch does not exist.
        :raises RepositoryError: If HEAD follows the branch."""
        if not branch:
            msg = 'Branch name is required'
            raise ValueError(msg)
        if not self.branch_exists(branch):
            msg = f'Branch "{branch}" does not exist.'
            raise UnknownRefError(msg)
        if self.head_branch() == branch:
            msg = f'Cannot delete the checked out branch "{branch}".'
            raise RepositoryError(msg)

        (self.heads_dir() / branch).unlink()

    # Tags

    @requires_repo
    def create_tag(self, tag_name: str, target: Ref | str) -> Tag:
        """Create a new tag that points to the given target commit. Tags never move once created.

        :param tag_name: The name of the tag to create.
        :param target: The reference (commit hash, branch, or tag) the new tag should point to.
        :return: The created Tag.
        :raises ValueError: If the tag name is empty.
        :raises RefExistsError: If the tag already exists.
        :raises UnknownRefError: If the target cannot be resolved."""
        validate_ref_name(tag_name)
        tag_path = self.tags_dir() / tag_name
        if tag_path.exists():
            msg = f'Tag "{tag_name}" already exists'
            raise RefExistsError(msg)

        resolved_target = self.resolve_ref(target)
        load_commit(self.objects_dir(), resolved_target)

        write_ref(tag_path, resolved_target)
        logger.info('Created tag %s at %s', tag_name, _short(resolved_target))
        return Tag(tag_name, resolved_target)

    @requires_repo
    def list_tags(self) -> list[Tag]:
        """Return all tags sorted by name."""
        return [Tag(name[len(TAG_PREFIX):], target) for name, target in self.refs(TAG_PREFIX)]

    @requires_repo
    def tag_exists(self, tag_name: str) -> bool:
        """Check whether a tag with the given name exists."""
        if not tag_name:
            msg = 'Tag name is required'
            raise ValueError(msg)

        return (self.tags_dir() / tag_name).is_file()

    # Objects and trees

    def ignore_predicate(self) -> IgnoreRules:
        """Read the ignore file and build the predicate used while snapshotting the working directory."""
        return IgnoreRules.from_file(self.working_dir, self.ignore_file, always_ignored=(self.repo_dir.name,))

    @requires_repo
    def save_file_content(self, file: Path) -> HashRef:
        """Save the content of a file to the repository as a blob.

        :raises ValueError: If the file does not exist."""
        return save_file_content(self.objects_dir(), file)

    @requires_repo
    def save_dir(self, path: Path) -> HashRef:
        """Save the content of a directory to the repository.

        :param path: The path to the directory to save.
        :return: A HashRef object representing the saved directory tree object.
        :raises NotADirectoryError: If the path is not a directory."""
        if not path or not path.is_dir():
            msg = f'{path} is not a directory'
            raise NotADirectoryError(msg)

        predicate = self.ignore_predicate()
        root = path.resolve()
        working_root = self.working_dir.resolve()
        if root != working_root and root.is_relative_to(working_root):
            # Ignore rules are relative to the working directory
            prefix = root.relative_to(working_root)
            return build_tree(self.objects_dir(), path, lambda rel: predicate(prefix / rel))
        return build_tree(self.objects_dir(), path, predicate)

    @requires_repo
    def load_object(self, ref: Ref | str) -> TwigObject:
        """Load and decode any stored object by digest or ref name."""
        return load_object(self.objects_dir(), self.resolve_ref(ref))

    # Commits

    @requires_repo
    def commit_working_dir(self, author: str, message: str) -> HashRef:
        """Commit the current working directory to the repository.

        The parents of the new commit are the HEAD commit (none for the first commit on an
        unborn branch) and, when concluding a conflicted merge, the pending MERGE_HEAD.
        The branch HEAD follows is advanced to the new commit; a detached HEAD moves itself.

        :param author: The name of the commit author.
        :param message: The commit message.
        :return: A HashRef object representing the commit reference.
        :raises ValueError: If the author or message is empty."""
        if not author:
            msg = 'Author is required'
            raise ValueError(msg)
        if not message:
            msg = 'Commit message is required'
            raise ValueError(msg)

        parents: list[HashRef] = []
        if (head_commit := self.head_commit()) is not None:
            parents.append(head_commit)
        merge_head = self._merge_head()
        if merge_head is not None:
            parents.append(merge_head)

        tree_hash = self.save_dir(self.working_dir)
        commit = Commit(tree_hash, author, message, int(datetime.now().timestamp()), tuple(parents))
        commit_ref = save_commit(self.objects_dir(), commit)

        self._advance_head(commit_ref)
        self.merge_head_file().unlink(missing_ok=True)
        return commit_ref

    def _merge_head(self) -> HashRef | None:
        merge_head_file = self.merge_head_file()
        if not merge_head_file.is_file():
            return None
        merge_head = read_ref(merge_head_file)
        return merge_head if isinstance(merge_head, HashRef) else None

    @requires_repo
    def log(self, tip: Ref | str | None = None) -> Generator[LogEntry, None, None]:
        """Generate a log of commits in the repository, starting from the specified tip.

        :param tip: The reference to the commit to start from. If None, defaults to the current HEAD.
        :return: A generator yielding every commit reachable from the tip once, first parents first."""
        start = self.head_commit() if tip is None else self.resolve_ref(tip)
        if start is None:
            return

        for commit_hash in iter_ancestors(self.objects_dir(), start):
            yield LogEntry(commit_hash, load_commit(self.objects_dir(), commit_hash))

    # Commit graph

    @requires_repo
    def common_ancestor(self, commit_ref1: Ref | str, commit_ref2: Ref | str) -> HashRef:
        """Find the lowest common ancestor of two commits.

        :raises UnrelatedHistoriesError: If the commits share no ancestor."""
        return lowest_common_ancestor(self.objects_dir(), self.resolve_ref(commit_ref1),
                                      self.resolve_ref(commit_ref2))

    @requires_repo
    def is_ancestor(self, ancestor: Ref | str, descendant: Ref | str) -> bool:
        return is_ancestor(self.objects_dir(), self.resolve_ref(ancestor), self.resolve_ref(descendant))

    @requires_repo
    def is_fast_forward(self, current: Ref | str, target: Ref | str) -> bool:
        return is_fast_forward(self.objects_dir(), self.resolve_ref(current), self.resolve_ref(target))

    # Working directory

    @requires_repo
    def checkout(self, target: Ref | str) -> HashRef:
        """Replace the working directory with the tree of a commit and move HEAD to it.

        HEAD follows the branch when `target` names one, and is detached otherwise. Uncommitted
        changes are overwritten.

        :return: The commit that was checked out."""
        commit_hash = self.resolve_ref(target)
        commit = load_commit(self.objects_dir(), commit_hash)
        materialize_tree(self.objects_dir(), commit.tree_hash, self.working_dir, self.ignore_predicate())
        self.merge_head_file().unlink(missing_ok=True)

        match target:
            case SymRef() if target.startswith(BRANCH_PREFIX):
                branch: str | None = target[len(BRANCH_PREFIX):]
            case HashRef() | SymRef():
                branch = None
            case _:
                branch = target if target not in HEAD_ALIASES else None

        if branch is not None and self.branch_exists(branch):
            self.set_head_branch(branch)
        elif target not in HEAD_ALIASES:
            write_ref(self.head_file(), commit_hash)
            logger.info('HEAD detached at %s', _short(commit_hash))
        return commit_hash

    @requires_repo
    def reset(self, target: Ref | str) -> HashRef:
        """Hard-reset the current branch (or the detached HEAD) to a commit.

        The working directory is overwritten with the commit's tree before the ref moves, so a
        missing or corrupt object leaves refs untouched.

        :return: The commit the branch now points to."""
        commit_hash = self.resolve_ref(target)
        commit = load_commit(self.objects_dir(), commit_hash)
        materialize_tree(self.objects_dir(), commit.tree_hash, self.working_dir, self.ignore_predicate())
        self.merge_head_file().unlink(missing_ok=True)
        self._advance_head(commit_hash)
        return commit_hash

    def _merger(self, ours_label: str, theirs_label: str) -> TextMerger:
        if self.text_merger is not None:
            return self.text_merger
        return partial(merge3_text, ours_label=ours_label, theirs_label=theirs_label)

    def _require_head_commit(self, action: str) -> HashRef:
        head_commit = self.head_commit()
        if head_commit is None:
            msg = f'Cannot {action} on a branch without commits'
            raise RepositoryError(msg)
        if self._merge_head() is not None:
            msg = f'Cannot {action} while a merge is in progress'
            raise RepositoryError(msg)
        return head_commit

    def _ensure_no_local_changes(self, action: str, from_tree: str, to_tree: str) -> None:
        dirty = local_changes(self.objects_dir(), self.working_dir, from_tree, to_tree, self.ignore_predicate())
        if dirty:
            raise UncommittedChangesError(action, dirty)

    @requires_repo
    def merge_commits(self, commit_ref1: Ref | str, commit_ref2: Ref | str) -> TreeMergeResult:
        """Compute the 3-way merge of two commits' trees without touching refs or the working directory.

        :raises UnrelatedHistoriesError: If the commits share no ancestor."""
        ours = self.resolve_ref(commit_ref1)
        theirs = self.resolve_ref(commit_ref2)
        base = lowest_common_ancestor(self.objects_dir(), ours, theirs)
        return merge_commits_core(self.objects_dir(), base, ours, theirs, self._merger(str(commit_ref1),
                                                                                        str(commit_ref2)))

    @requires_repo
    def merge(self, other: Ref | str, author: str, message: str | None = None) -> MergeResult:
        """Merge another commit into HEAD.

        - If `other` is already contained in HEAD nothing happens.
        - If HEAD is an ancestor of `other` the branch is fast-forwarded; no commit is created.
        - Otherwise the trees are merged three ways against the lowest common ancestor. A clean
          merge creates exactly one commit with parents ``[ours, theirs]``. A conflicted merge
          writes the merged files (with conflict markers) to the working directory, records
          MERGE_HEAD and leaves the branch where it was; committing afterwards concludes the merge.

        :raises UnrelatedHistoriesError: If the histories share no commit.
        :raises UncommittedChangesError: If a path the merge writes or removes has local changes; nothing
            is modified in that case.
        :raises RepositoryError: If HEAD has no commit or a merge is already in progress."""
        if not author:
            msg = 'Author is required'
            raise ValueError(msg)

        ours = self._require_head_commit('merge')
        theirs = self.resolve_ref(other)
        base = lowest_common_ancestor(self.objects_dir(), ours, theirs)
        ours_tree = load_commit(self.objects_dir(), ours).tree_hash

        if base == theirs:
            logger.info('Already up to date with %s', other)
            return MergeResult(MergeOutcome.UP_TO_DATE, ours, theirs, base, ours, ours_tree)

        if base == ours:
            theirs_tree = load_commit(self.objects_dir(), theirs).tree_hash
            self._ensure_no_local_changes('merge', ours_tree, theirs_tree)
            update_working_tree(self.objects_dir(), self.working_dir, ours_tree, theirs_tree)
            self._advance_head(theirs)
            logger.info('Fast-forward to %s', _short(theirs))
            return MergeResult(MergeOutcome.FAST_FORWARD, ours, theirs, base, theirs, theirs_tree)

        current = self.head_branch() or 'HEAD'
        logger.info('Merge base of %s and %s: %s', current, other, _short(base))
        result = merge_commits_core(self.objects_dir(), base, ours, theirs, self._merger(current, str(other)))
        self._ensure_no_local_changes('merge', ours_tree, result.tree_hash)
        update_working_tree(self.objects_dir(), self.working_dir, ours_tree, result.tree_hash)

        if result.conflicts:
            write_ref(self.merge_head_file(), theirs)
            return MergeResult(MergeOutcome.CONFLICT, ours, theirs, base, None, result.tree_hash, result.conflicts)

        merge_commit = Commit(result.tree_hash, author, message or f'Merge {other} into {current}',
                              int(datetime.now().timestamp()), (ours, theirs))
        commit_ref = save_commit(self.objects_dir(), merge_commit)
        self._advance_head(commit_ref)
        logger.info('Merge commit created: %s', _short(commit_ref))
        return MergeResult(MergeOutcome.MERGED, ours, theirs, base, commit_ref, result.tree_hash)

    @requires_repo
    def rebase(self, target: Ref | str) -> RebaseResult:
        """Replay the commits of HEAD that are not in `target` on top of `target`.

        Commits are replayed oldest first along the first-parent chain, keeping their author,
        timestamp and message. The branch (or detached HEAD) only moves once every commit has
        been replayed; on the first conflict the rebase is abandoned and refs and the working
        directory are left unchanged.

        :raises UnrelatedHistoriesError: If the histories share no commit.
        :raises UncommittedChangesError: If a path the rebase writes or removes has local changes; nothing
            is modified in that case.
        :raises RepositoryError: If HEAD has no commit or a merge is in progress."""
        current = self._require_head_commit('rebase')
        target_hash = self.resolve_ref(target)
        base = lowest_common_ancestor(self.objects_dir(), current, target_hash)
        current_tree = load_commit(self.objects_dir(), current).tree_hash

        if base == target_hash:
            logger.info('Current branch is up to date with %s', target)
            return RebaseResult(RebaseOutcome.UP_TO_DATE, current, target_hash, base, current)

        to_replay = commits_to_replay(self.objects_dir(), base, current)
        if not to_replay:
            target_tree = load_commit(self.objects_dir(), target_hash).tree_hash
            self._ensure_no_local_changes('rebase', current_tree, target_tree)
            update_working_tree(self.objects_dir(), self.working_dir, current_tree, target_tree)
            self._advance_head(target_hash)
            logger.info('Fast-forward to %s', _short(target_hash))
            return RebaseResult(RebaseOutcome.FAST_FORWARD, current, target_hash, base, target_hash)

        state = replay_commits(self.objects_dir(), target_hash, to_replay,
                               self._merger(str(target), self.head_branch() or 'HEAD'))
        if state.stopped:
            return RebaseResult(RebaseOutcome.CONFLICT, current, target_hash, base,
                                replayed=list(state.pairs), stopped_at=state.stopped_at,
                                conflicts=list(state.conflicts))

        new_tree = load_commit(self.objects_dir(), state.onto).tree_hash
        self._ensure_no_local_changes('rebase', current_tree, new_tree)
        update_working_tree(self.objects_dir(), self.working_dir, current_tree, new_tree)
        self._advance_head(state.onto)
        logger.info('Rebased %d commits onto %s', len(state.pairs), _short(target_hash))
        return RebaseResult(RebaseOutcome.REBASED, current, target_hash, base, state.onto, list(state.pairs))

    # Diffs

    @requires_repo
    def diff_commits(self, commit_ref1: Ref | str | None = None,
                     commit_ref2: Ref | str | None = None) -> list[FileChange]:
        """List the files that differ between the trees of two commits (HEAD by default)."""
        tree1 = load_commit(self.objects_dir(), self.resolve_ref(commit_ref1 or 'HEAD')).tree_hash
        tree2 = load_commit(self.objects_dir(), self.resolve_ref(commit_ref2 or 'HEAD')).tree_hash
        if tree1 == tree2:
            return []
        return changed_files(flatten_tree(self.objects_dir(), tree1), flatten_tree(self.objects_dir(), tree2))

    @requires_repo
    def diff(self, commit_ref1: Ref | str | None = None, commit_ref2: Ref | str | None = None) -> bytes:
        """Render the unified diff from the tree of one commit to the tree of another (HEAD by default)."""
        tree1 = load_commit(self.objects_dir(), self.resolve_ref(commit_ref1 or 'HEAD')).tree_hash
        tree2 = load_commit(self.objects_dir(), self.resolve_ref(commit_ref2 or 'HEAD')).tree_hash
        return diff_trees(self.objects_dir(), flatten_tree(self.objects_dir(), tree1),
                          flatten_tree(self.objects_dir(), tree2))

    @requires_repo
    def show(self, commit_ref: Ref | str | None = None) -> tuple[LogEntry, bytes]:
        """Return a commit together with the unified diff it introduces over its first parent.

        A root commit is diffed against the empty tree, so every file shows up as added.

        :param commit_ref: The commit to show. Defaults to HEAD."""
        commit_hash = self.resolve_ref(commit_ref or 'HEAD')
        commit = load_commit(self.objects_dir(), commit_hash)
        parent_tree = load_commit(self.objects_dir(), commit.parents[0]).tree_hash if commit.parents else None
        patch = diff_trees(self.objects_dir(), flatten_tree(self.objects_dir(), parent_tree),
                           flatten_tree(self.objects_dir(), commit.tree_hash))
        return LogEntry(commit_hash, commit), patch

    @requires_repo
    def status(self) -> list[FileChange]:
        """List the files in the working directory that differ from the HEAD commit."""
        head_commit = self.head_commit()
        head_tree = load_commit(self.objects_dir(), head_commit).tree_hash if head_commit else None
        return changed_files(flatten_tree(self.objects_dir(), head_tree),
                             working_tree_map(self.working_dir, self.ignore_predicate()))


def branch_ref(branch: str) -> SymRef:
    """Create a symbolic reference for a branch name.

    :param branch: The name of the branch.
    :return: A SymRef object representing the branch reference."""
    return SymRef(f'{BRANCH_PREFIX}{branch}')


def tag_ref(tag: str) -> SymRef:
    """Create a symbolic reference for a tag name."""
    return SymRef(f'{TAG_PREFIX}{tag}')
