"""Replay of a linear commit sequence onto a new base.

Replay is a fold over the commits to replay: each step merges one original
commit's change (its tree against its first parent's tree) into the tree of the
commit built by the previous step. The fold stops at the first conflict; nothing
outside the object store is touched, so abandoning a conflicted replay leaves
refs and the working directory as they were.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .constants import SHORT_HASH_LENGTH
from .exceptions import RebaseConflictError
from .merge import TextMerger, merge3_text, merge_trees
from .objects import Commit
from .plumbing import load_commit, save_commit
from .ref import HashRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RebaseCommitPair:
    """Maps an original commit to its replayed replacement."""

    original: HashRef
    replayed: HashRef


@dataclass(frozen=True)
class ReplayState:
    """State threaded through the replay fold."""

    onto: HashRef
    pairs: tuple[RebaseCommitPair, ...] = ()
    stopped_at: HashRef | None = None
    conflicts: tuple[str, ...] = ()

    @property
    def stopped(self) -> bool:
        return self.stopped_at is not None


def replay_step(objects_dir: Path, state: ReplayState, original: HashRef,
                text_merger: TextMerger = merge3_text) -> ReplayState:
    """Replay one commit on top of `state.onto`.

    The original commit's tree is merged as "theirs" against its first parent's tree as
    the base and the current tip's tree as "ours". The new commit keeps the original
    author, timestamp and message.

    :return: The advanced state, or a stopped state carrying the conflicted paths."""
    if state.stopped:
        return state

    commit = load_commit(objects_dir, original)
    onto_commit = load_commit(objects_dir, state.onto)
    base_tree = load_commit(objects_dir, commit.parent).tree_hash if commit.parent else None

    result = merge_trees(objects_dir, base_tree, onto_commit.tree_hash, commit.tree_hash, text_merger)
    if result.conflicts:
        return ReplayState(state.onto, state.pairs, original, tuple(result.conflicts))

    replayed = save_commit(objects_dir, Commit(result.tree_hash, commit.author, commit.message, commit.timestamp,
                                               (state.onto,)))
    logger.debug('Replayed %s as %s', original[:SHORT_HASH_LENGTH], replayed[:SHORT_HASH_LENGTH])
    return ReplayState(replayed, (*state.pairs, RebaseCommitPair(original, replayed)))


def replay_commits(objects_dir: Path, onto: str, commits: Iterable[str],
                   text_merger: TextMerger = merge3_text) -> ReplayState:
    """Fold `replay_step` over `commits` (oldest first), stopping at the first conflict."""
    state = ReplayState(HashRef(onto))
    for original in commits:
        state = replay_step(objects_dir, state, HashRef(original), text_merger)
        if state.stopped:
            logger.warning('Replay of %s conflicts in %d files',
                           state.stopped_at[:SHORT_HASH_LENGTH], len(state.conflicts))
            break
    return state


class RebaseOutcome(Enum):
    UP_TO_DATE = 'up-to-date'
    FAST_FORWARD = 'fast-forward'
    REBASED = 'rebased'
    CONFLICT = 'conflict'


@dataclass
class RebaseResult:
    """Outcome of rebasing HEAD onto a target commit."""

    outcome: RebaseOutcome
    original_tip: HashRef
    target: HashRef
    base: HashRef
    new_tip: HashRef | None = None
    replayed: list[RebaseCommitPair] = field(default_factory=list)
    stopped_at: HashRef | None = None
    conflicts: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is not RebaseOutcome.CONFLICT

    def raise_for_conflicts(self) -> None:
        """Raise `RebaseConflictError` if the rebase was aborted by a conflict."""
        if self.outcome is RebaseOutcome.CONFLICT:
            raise RebaseConflictError(self.stopped_at or '', self.conflicts)
