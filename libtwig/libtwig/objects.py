"""Object model: blobs, trees and commits, and their canonical byte encoding.

Every object is encoded as ``<kind> <payload length>\\0<payload>``. Encoding is
deterministic, so the digest of the encoded bytes doubles as an equality test.
"""

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from .constants import BLOB_MODE, HASH_LENGTH, TREE_MODE
from .exceptions import CorruptObjectError
from .ref import HashRef, is_hash


class ObjectKind(Enum):
    """The closed set of object kinds, keyed by their header tag."""

    BLOB = 'blob'
    TREE = 'tree'
    COMMIT = 'commit'


class TreeRecordType(Enum):
    """Kind of a tree entry, valued by its file mode."""

    BLOB = BLOB_MODE
    TREE = TREE_MODE

    @property
    def mode(self) -> str:
        return self.value


@dataclass(frozen=True)
class Blob:
    """Raw file content."""

    data: bytes


@dataclass(frozen=True)
class TreeRecord:
    """A single named entry of a tree."""

    type: TreeRecordType
    hash: HashRef
    name: str


@dataclass(frozen=True)
class Tree:
    """One directory level; records are keyed by entry name."""

    records: Mapping[str, TreeRecord] = field(default_factory=dict)

    def sorted_records(self) -> list[TreeRecord]:
        return [self.records[name] for name in sorted(self.records)]


@dataclass(frozen=True)
class Commit:
    """A snapshot of the working tree with its place in history."""

    tree_hash: HashRef
    author: str
    message: str
    timestamp: int
    parents: tuple[HashRef, ...] = ()

    @property
    def parent(self) -> HashRef | None:
        """The first parent, or None for a root commit."""
        return self.parents[0] if self.parents else None

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


type TwigObject = Blob | Tree | Commit


def kind_of(obj: TwigObject) -> ObjectKind:
    match obj:
        case Blob():
            return ObjectKind.BLOB
        case Tree():
            return ObjectKind.TREE
        case Commit():
            return ObjectKind.COMMIT
        case _:
            msg = f'Not an object: {type(obj)}'
            raise TypeError(msg)


def validate_entry_name(name: str) -> None:
    if not name or name in ('.', '..') or '/' in name or '\0' in name:
        msg = f'Invalid tree entry name: {name!r}'
        raise CorruptObjectError(msg)


def _encode_tree(tree: Tree) -> bytes:
    entries: list[bytes] = []
    for record in tree.sorted_records():
        validate_entry_name(record.name)
        if not is_hash(record.hash):
            msg = f'Invalid digest {record.hash!r} for tree entry {record.name!r}'
            raise CorruptObjectError(msg)
        entries.append(f'{record.type.mode} {record.name}'.encode() + b'\0' + bytes.fromhex(record.hash))
    return b''.join(entries)


def _encode_commit(commit: Commit) -> bytes:
    lines = [f'tree {commit.tree_hash}']
    lines.extend(f'parent {parent}' for parent in commit.parents)
    lines.append(f'author {commit.author}')
    lines.append(f'timestamp {commit.timestamp}')
    return ('\n'.join(lines) + '\n\n' + commit.message).encode()


def encode_payload(obj: TwigObject) -> bytes:
    match obj:
        case Blob(data):
            return data
        case Tree():
            return _encode_tree(obj)
        case Commit():
            if '\n' in obj.author:
                msg = 'Commit author must be a single line'
                raise ValueError(msg)
            return _encode_commit(obj)
        case _:
            msg = f'Not an object: {type(obj)}'
            raise TypeError(msg)


def encode_object(obj: TwigObject) -> bytes:
    """Encode an object into its canonical stored form (header followed by payload)."""
    payload = encode_payload(obj)
    return f'{kind_of(obj).value} {len(payload)}'.encode() + b'\0' + payload


def hash_bytes(data: bytes) -> HashRef:
    return HashRef(hashlib.sha1(data).hexdigest())


def hash_object(obj: TwigObject) -> HashRef:
    """Compute the digest an object would be stored under, without storing it."""
    return hash_bytes(encode_object(obj))


def is_canonical_decimal(value: str) -> bool:
    """Whether `value` is a non-negative integer written in ASCII digits without leading zeros."""
    return value.isascii() and value.isdigit() and (value == '0' or not value.startswith('0'))


def _decode_tree(payload: bytes) -> Tree:
    records: dict[str, TreeRecord] = {}
    digest_size = HASH_LENGTH // 2
    pos = 0
    previous_name: str | None = None

    while pos < len(payload):
        nul = payload.find(b'\0', pos)
        if nul == -1 or nul + 1 + digest_size > len(payload):
            msg = 'Truncated tree entry'
            raise CorruptObjectError(msg)

        try:
            mode, name = payload[pos:nul].decode().split(' ', 1)
            record_type = TreeRecordType(mode)
        except ValueError as e:
            msg = f'Malformed tree entry header {payload[pos:nul]!r}'
            raise CorruptObjectError(msg) from e

        validate_entry_name(name)
        if previous_name is not None and name <= previous_name:
            msg = f'Tree entries are not in canonical order at {name!r}'
            raise CorruptObjectError(msg)
        previous_name = name

        digest = HashRef(payload[nul + 1:nul + 1 + digest_size].hex())
        records[name] = TreeRecord(record_type, digest, name)
        pos = nul + 1 + digest_size

    return Tree(records)


def _decode_commit(payload: bytes) -> Commit:
    try:
        text = payload.decode()
    except UnicodeDecodeError as e:
        msg = 'Commit is not valid UTF-8'
        raise CorruptObjectError(msg) from e

    header, separator, message = text.partition('\n\n')
    if not separator:
        msg = 'Commit has no message separator'
        raise CorruptObjectError(msg)

    tree_hash: HashRef | None = None
    parents: list[HashRef] = []
    author: str | None = None
    timestamp: int | None = None

    for line in header.split('\n'):
        key, _, value = line.partition(' ')
        match key:
            case 'tree' if tree_hash is None and is_hash(value):
                tree_hash = HashRef(value)
            case 'parent' if tree_hash is not None and author is None and is_hash(value):
                parents.append(HashRef(value))
            case 'author' if tree_hash is not None and author is None:
                author = value
            case 'timestamp' if author is not None and timestamp is None and is_canonical_decimal(value):
                timestamp = int(value)
            case _:
                msg = f'Unexpected commit header line {line!r}'
                raise CorruptObjectError(msg)

    if tree_hash is None or author is None or timestamp is None:
        msg = 'Commit is missing a required field'
        raise CorruptObjectError(msg)

    return Commit(tree_hash, author, message, timestamp, tuple(parents))


def decode_object(data: bytes) -> TwigObject:
    """Decode stored bytes into an object, dispatching on the header's kind tag.

    :raises CorruptObjectError: If the header or payload does not follow the canonical encoding."""
    header, separator, payload = data.partition(b'\0')
    if not separator:
        msg = 'Object header is not terminated'
        raise CorruptObjectError(msg)

    try:
        tag, size = header.decode('ascii').split(' ')
        kind = ObjectKind(tag)
    except ValueError as e:
        msg = f'Malformed object header {header[:32]!r}'
        raise CorruptObjectError(msg) from e

    if not is_canonical_decimal(size):
        msg = f'Malformed object size {size!r}'
        raise CorruptObjectError(msg)
    declared_size = int(size)

    if declared_size != len(payload):
        msg = f'Object size mismatch: header says {declared_size}, payload has {len(payload)}'
        raise CorruptObjectError(msg)

    match kind:
        case ObjectKind.BLOB:
            return Blob(payload)
        case ObjectKind.TREE:
            return _decode_tree(payload)
        case ObjectKind.COMMIT:
            return _decode_commit(payload)
