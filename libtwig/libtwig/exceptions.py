"""Exception hierarchy for libtwig."""

from collections.abc import Sequence


class TwigError(Exception):
    """Base class for all libtwig errors."""


class RepositoryError(TwigError):
    """Exception raised for repository-related errors."""


class RepositoryNotFoundError(RepositoryError):
    """Exception raised when a repository is not found."""


class UncommittedChangesError(RepositoryError):
    """Raised when an operation would overwrite local changes in the working directory."""

    def __init__(self, operation: str, paths: Sequence[str]) -> None:
        self.paths = list(paths)
        super().__init__(f'Cannot {operation}: local changes would be overwritten in {", ".join(self.paths)}')


class ObjectNotFoundError(TwigError):
    """Raised when a digest does not name a stored object."""


class CorruptObjectError(TwigError):
    """Raised when a stored object violates the canonical encoding or has the wrong kind."""


class RefError(TwigError):
    """Exception raised for reference-related errors."""


class UnknownRefError(RefError):
    """Raised when a name resolves neither to a ref nor to a stored digest."""


class RefExistsError(RefError):
    """Raised when creating a branch or tag whose name is already taken."""


class UnrelatedHistoriesError(TwigError):
    """Raised when two commits share no common ancestor."""


class MergeConflictError(TwigError):
    """Raised by `MergeResult.raise_for_conflicts` when a merge left conflicted paths."""

    def __init__(self, paths: Sequence[str]) -> None:
        self.paths = list(paths)
        super().__init__(f'Merge conflict in {", ".join(self.paths)}')


class RebaseConflictError(TwigError):
    """Raised by `RebaseResult.raise_for_conflicts` when a replayed commit conflicted."""

    def __init__(self, commit: str, paths: Sequence[str]) -> None:
        self.commit = commit
        self.paths = list(paths)
        super().__init__(f'Rebase stopped at {commit}: conflict in {", ".join(self.paths)}')
