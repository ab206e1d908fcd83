"""Constants used throughout libtwig."""

DEFAULT_REPO_DIR = '.twig'
OBJECTS_SUBDIR = 'objects'
HEAD_FILE = 'HEAD'
MERGE_HEAD_FILE = 'MERGE_HEAD'
DEFAULT_BRANCH = 'main'
REFS_DIR = 'refs'
HEADS_DIR = 'heads'
TAGS_DIR = 'tags'
IGNORE_FILE = '.twigignore'

SYMREF_PREFIX = 'ref:'
HEAD_ALIASES = ('HEAD', '@')

HASH_LENGTH = 40
HASH_CHARSET = '0123456789abcdef'

BLOB_MODE = '100644'
TREE_MODE = '40000'

SHORT_HASH_LENGTH = 12
