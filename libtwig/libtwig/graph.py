"""Traversal of the commit graph: ancestry, lowest common ancestors and fast-forward detection.

The graph is acyclic by construction (a commit can only name parents that already
exist), so traversals only track visited commits to avoid revisiting shared history.
"""

from collections import deque
from collections.abc import Generator, Iterable
from pathlib import Path

from .exceptions import UnrelatedHistoriesError
from .plumbing import load_commit
from .ref import HashRef


def iter_ancestors(objects_dir: Path, tips: str | Iterable[str]) -> Generator[HashRef, None, None]:
    """Lazily yield the given commits and all of their ancestors, each exactly once.

    First parents are followed before other parents, so a linear history is yielded
    newest to oldest.

    :raises ObjectNotFoundError: If a commit in the history is missing.
    :raises CorruptObjectError: If a commit in the history cannot be decoded."""
    pending = deque([HashRef(tips)] if isinstance(tips, str) else [HashRef(tip) for tip in tips])
    visited: set[HashRef] = set()

    while pending:
        commit_hash = pending.popleft()
        if commit_hash in visited:
            continue
        visited.add(commit_hash)
        yield commit_hash

        parents = load_commit(objects_dir, commit_hash).parents
        pending.extendleft(parents[:1])
        pending.extend(parents[1:])


def ancestor_distances(objects_dir: Path, tip: str) -> dict[HashRef, int]:
    """Map every ancestor of `tip` (including itself) to its shortest parent-chain distance."""
    distances = {HashRef(tip): 0}
    pending = deque([HashRef(tip)])

    while pending:
        commit_hash = pending.popleft()
        for parent in load_commit(objects_dir, commit_hash).parents:
            if parent not in distances:
                distances[parent] = distances[commit_hash] + 1
                pending.append(parent)

    return distances


def is_ancestor(objects_dir: Path, ancestor: str, descendant: str) -> bool:
    """Check whether `ancestor` is reachable from `descendant` through parent links (reflexive)."""
    return any(commit_hash == ancestor for commit_hash in iter_ancestors(objects_dir, descendant))


def is_fast_forward(objects_dir: Path, current: str, target: str) -> bool:
    """Check whether moving `current` to `target` alone reproduces a merge of the two."""
    return is_ancestor(objects_dir, current, target)


def common_ancestors(objects_dir: Path, commit1: str, commit2: str) -> list[HashRef]:
    """Return the best common ancestors of two commits: those with no other common ancestor descending from them.

    :raises UnrelatedHistoriesError: If the commits share no ancestor."""
    distances1 = ancestor_distances(objects_dir, commit1)
    distances2 = ancestor_distances(objects_dir, commit2)
    common = distances1.keys() & distances2.keys()
    if not common:
        msg = f'Commits {commit1} and {commit2} have no common ancestor'
        raise UnrelatedHistoriesError(msg)

    # Every proper ancestor of a common ancestor is dominated by it
    dominated = set(iter_ancestors(objects_dir, (parent for commit_hash in common
                                                 for parent in load_commit(objects_dir, commit_hash).parents)))
    candidates = common - dominated

    return sorted(candidates, key=lambda c: (distances1[c] + distances2[c],
                                             max(distances1[c], distances2[c]),
                                             c))


def lowest_common_ancestor(objects_dir: Path, commit1: str, commit2: str) -> HashRef:
    """Find the lowest common ancestor of two commits.

    When several candidates qualify (criss-cross histories), the one closest to both inputs
    is chosen, with ties broken by digest so the choice is stable across runs.

    :raises UnrelatedHistoriesError: If the commits share no ancestor."""
    return common_ancestors(objects_dir, commit1, commit2)[0]


def commits_to_replay(objects_dir: Path, base: str, tip: str) -> list[HashRef]:
    """List the commits on the first-parent chain of `tip` that are not ancestors of `base`, oldest first."""
    excluded = set(iter_ancestors(objects_dir, base))
    chain: list[HashRef] = []

    current: HashRef | None = HashRef(tip)
    while current is not None and current not in excluded:
        chain.append(current)
        current = load_commit(objects_dir, current).parent

    chain.reverse()
    return chain
