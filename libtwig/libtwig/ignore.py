"""Ignore predicate built from a glob-style ignore file."""

from collections.abc import Iterable
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath

from .constants import IGNORE_FILE


@dataclass(frozen=True)
class IgnoreRule:
    pattern: str
    exclude: bool
    directory_only: bool

    def matches(self, path: PurePosixPath, is_dir: bool) -> bool:
        if self.directory_only and not is_dir:
            return False
        if '/' in self.pattern:
            return fnmatch(str(path), self.pattern.lstrip('/'))
        return fnmatch(path.name, self.pattern) or fnmatch(str(path), self.pattern)


def parse_rule(line: str) -> IgnoreRule | None:
    line = line.strip()
    if not line or line.startswith('#'):
        return None

    exclude = True
    if line.startswith('!'):
        exclude = False
        line = line[1:]
    elif line.startswith('\\'):
        line = line[1:]

    directory_only = line.endswith('/')
    line = line.rstrip('/')
    if not line:
        return None
    return IgnoreRule(line, exclude, directory_only)


class IgnoreRules:
    """Callable ignore predicate over paths relative to the working directory.

    The repository directory is always ignored. Rules are evaluated in order and
    the last matching rule wins, so a later ``!pattern`` re-includes a path. A
    path is also ignored when any of its parent directories is ignored."""

    def __init__(self, rules: Iterable[IgnoreRule] = (), always_ignored: Iterable[str] = (),
                 root: Path | None = None) -> None:
        self.rules = list(rules)
        self.always_ignored = frozenset(always_ignored)
        self.root = root

    @classmethod
    def from_file(cls, working_dir: Path, ignore_file: str = IGNORE_FILE,
                  always_ignored: Iterable[str] = ()) -> 'IgnoreRules':
        """Read the ignore file at the root of the working directory, if there is one."""
        path = working_dir / ignore_file
        rules: list[IgnoreRule] = []
        if path.is_file():
            for line in path.read_text(encoding='utf-8').splitlines():
                rule = parse_rule(line)
                if rule is not None:
                    rules.append(rule)
        return cls(rules, always_ignored, working_dir)

    def _match(self, path: PurePosixPath, is_dir: bool) -> bool:
        ignored = False
        for rule in self.rules:
            if rule.matches(path, is_dir):
                ignored = rule.exclude
        return ignored

    def __call__(self, path: Path | PurePosixPath | str) -> bool:
        rel_path = PurePosixPath(Path(path).as_posix())
        if any(part in self.always_ignored for part in rel_path.parts):
            return True

        parents = list(reversed(rel_path.parents))[1:]
        if any(self._match(parent, is_dir=True) for parent in parents):
            return True

        is_dir = self.root is not None and (self.root / rel_path).is_dir()
        return self._match(rel_path, is_dir)
