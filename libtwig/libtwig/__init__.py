"""libtwig: content-addressed version control core."""

from .exceptions import (CorruptObjectError, MergeConflictError, ObjectNotFoundError, RebaseConflictError, RefError,
                         RefExistsError, RepositoryError, RepositoryNotFoundError, TwigError, UncommittedChangesError,
                         UnknownRefError, UnrelatedHistoriesError)
from .merge import MergeOutcome, MergeResult, TreeMergeResult
from .objects import Blob, Commit, ObjectKind, Tree, TreeRecord, TreeRecordType
from .rebase import RebaseOutcome, RebaseResult
from .ref import HashRef, SymRef
from .repository import LogEntry, Repository, Tag, branch_ref, tag_ref

__all__ = [
    'Blob',
    'Commit',
    'CorruptObjectError',
    'HashRef',
    'LogEntry',
    'MergeConflictError',
    'MergeOutcome',
    'MergeResult',
    'ObjectKind',
    'ObjectNotFoundError',
    'RebaseConflictError',
    'RebaseOutcome',
    'RebaseResult',
    'RefError',
    'RefExistsError',
    'Repository',
    'RepositoryError',
    'RepositoryNotFoundError',
    'SymRef',
    'Tag',
    'Tree',
    'TreeMergeResult',
    'TreeRecord',
    'TreeRecordType',
    'TwigError',
    'UncommittedChangesError',
    'UnknownRefError',
    'UnrelatedHistoriesError',
    'branch_ref',
    'tag_ref',
]
