from collections.abc import Callable
from pathlib import Path

from libtwig.repository import Repository
from pytest import fixture


@fixture
def temp_repo_dir(tmp_path: Path) -> Path:
    return tmp_path


@fixture
def temp_repo(temp_repo_dir: Path) -> Repository:
    repo = Repository(temp_repo_dir)
    repo.init()
    return repo


@fixture
def write_files() -> Callable[[Path, dict[str, str]], None]:
    def _write(root: Path, files: dict[str, str]) -> None:
        for name, content in files.items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)

    return _write
