"""Content-addressable object storage.

Objects are stored uncompressed under ``objects/<first two hex>/<remaining hex>``.
Records are immutable: writing an existing digest is a no-op.
"""

import logging
import os
import tempfile
from pathlib import Path

from .constants import SHORT_HASH_LENGTH
from .exceptions import CorruptObjectError, ObjectNotFoundError
from .objects import Blob, Commit, ObjectKind, Tree, TwigObject, decode_object, encode_object, hash_bytes, kind_of
from .ref import HashRef, is_hash

logger = logging.getLogger(__name__)


def get_content_path(objects_dir: str | Path, object_hash: str) -> Path:
    """Get the path of the record holding an object.

    :raises ObjectNotFoundError: If the value is not a well-formed digest."""
    if not is_hash(object_hash):
        msg = f'Invalid object hash: {object_hash!r}'
        raise ObjectNotFoundError(msg)
    return Path(objects_dir) / object_hash[:2] / object_hash[2:]


def object_exists(objects_dir: str | Path, object_hash: str) -> bool:
    return is_hash(object_hash) and get_content_path(objects_dir, object_hash).is_file()


def put_object(objects_dir: str | Path, data: bytes) -> HashRef:
    """Store encoded object bytes under their digest.

    :param objects_dir: The objects directory of the repository.
    :param data: The full encoded object (header and payload).
    :return: The digest of the data."""
    object_hash = hash_bytes(data)
    path = get_content_path(objects_dir, object_hash)
    if path.exists():
        return object_hash

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix='.tmp-')
    try:
        with os.fdopen(fd, 'wb') as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug('Stored object %s (%d bytes)', object_hash[:SHORT_HASH_LENGTH], len(data))
    return object_hash


def get_object(objects_dir: str | Path, object_hash: str) -> bytes:
    """Read the encoded bytes of an object and verify them against the digest.

    :raises ObjectNotFoundError: If no record exists for the digest.
    :raises CorruptObjectError: If the stored bytes do not hash to the digest."""
    path = get_content_path(objects_dir, object_hash)
    try:
        data = path.read_bytes()
    except FileNotFoundError as e:
        msg = f'Object {object_hash} not found'
        raise ObjectNotFoundError(msg) from e

    if hash_bytes(data) != object_hash:
        msg = f'Object {object_hash} does not match its content digest'
        raise CorruptObjectError(msg)
    return data


def save_object(objects_dir: str | Path, obj: TwigObject) -> HashRef:
    return put_object(objects_dir, encode_object(obj))


def load_object(objects_dir: str | Path, object_hash: str) -> TwigObject:
    return decode_object(get_object(objects_dir, object_hash))


def _load_expected(objects_dir: str | Path, object_hash: str, expected: ObjectKind) -> TwigObject:
    obj = load_object(objects_dir, object_hash)
    if kind_of(obj) is not expected:
        msg = f'Expected {object_hash} to be a {expected.value}, found {kind_of(obj).value}'
        raise CorruptObjectError(msg)
    return obj


def save_blob(objects_dir: str | Path, data: bytes) -> HashRef:
    return save_object(objects_dir, Blob(data))


def save_file_content(objects_dir: str | Path, file: Path) -> HashRef:
    """Store the content of a file as a blob.

    :raises ValueError: If the file does not exist."""
    if not file.is_file():
        msg = f'{file} is not a file'
        raise ValueError(msg)
    return save_blob(objects_dir, file.read_bytes())


def load_blob(objects_dir: str | Path, blob_hash: str) -> bytes:
    blob = _load_expected(objects_dir, blob_hash, ObjectKind.BLOB)
    return blob.data


def save_tree(objects_dir: str | Path, tree: Tree) -> HashRef:
    return save_object(objects_dir, tree)


def load_tree(objects_dir: str | Path, tree_hash: str) -> Tree:
    return _load_expected(objects_dir, tree_hash, ObjectKind.TREE)


def save_commit(objects_dir: str | Path, commit: Commit) -> HashRef:
    return save_object(objects_dir, commit)


def load_commit(objects_dir: str | Path, commit_hash: str) -> Commit:
    return _load_expected(objects_dir, commit_hash, ObjectKind.COMMIT)
