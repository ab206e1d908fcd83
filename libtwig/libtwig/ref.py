"""Reference values and their on-disk representation."""

from pathlib import Path

from .constants import HASH_CHARSET, HASH_LENGTH, SYMREF_PREFIX
from .exceptions import RefError


class HashRef(str):
    """A reference that is a literal object digest."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f'HashRef({str(self)!r})'


class SymRef(str):
    """A symbolic reference naming another ref, e.g. ``refs/heads/main``."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f'SymRef({str(self)!r})'


type Ref = HashRef | SymRef


def is_hash(value: str) -> bool:
    return len(value) == HASH_LENGTH and all(c in HASH_CHARSET for c in value)


def parse_ref(content: str) -> Ref | None:
    """Parse the text stored in a ref file.

    :param content: The raw file content.
    :return: A SymRef for ``ref: <name>``, a HashRef for a digest, or None for an empty (unborn) ref.
    :raises RefError: If the content is neither."""
    content = content.strip()
    if not content:
        return None

    if content.startswith(SYMREF_PREFIX):
        target = content[len(SYMREF_PREFIX):].strip()
        if not target:
            msg = 'Symbolic reference has no target'
            raise RefError(msg)
        return SymRef(target)

    if is_hash(content):
        return HashRef(content)

    msg = f'Invalid reference content: {content!r}'
    raise RefError(msg)


def read_ref(ref_file: Path) -> Ref | None:
    """Read a reference from a file.

    :param ref_file: The path of the ref file.
    :return: The stored reference, or None if the file is empty.
    :raises RefError: If the file cannot be read or holds an invalid value."""
    try:
        content = ref_file.read_text(encoding='ascii')
    except (OSError, UnicodeDecodeError) as e:
        msg = f'Error reading reference {ref_file}'
        raise RefError(msg) from e

    return parse_ref(content)


def write_ref(ref_file: Path, ref: Ref | None) -> None:
    """Write a reference to a file, creating parent directories as needed.

    :param ref_file: The path of the ref file.
    :param ref: The reference to store; None writes an empty (unborn) ref."""
    match ref:
        case SymRef():
            content = f'{SYMREF_PREFIX} {ref}\n'
        case HashRef():
            content = f'{ref}\n'
        case None:
            content = ''
        case _:
            msg = f'Invalid reference type: {type(ref)}'
            raise RefError(msg)

    ref_file.parent.mkdir(parents=True, exist_ok=True)
    ref_file.write_text(content, encoding='ascii')
