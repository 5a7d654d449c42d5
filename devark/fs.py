"""Filesystem access used by settings, hooks, and token storage.

Components take a ``FileSystem`` so tests can point them at ``tmp_path``
through ``home`` and ``tmpdir`` overrides.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]


class FileSystem:
    """Thin wrapper over pathlib with overridable home and temp roots."""

    def __init__(self, home: Optional[PathLike] = None, tmpdir: Optional[PathLike] = None):
        self._home = Path(home) if home is not None else None
        self._tmpdir = Path(tmpdir) if tmpdir is not None else None

    def homedir(self) -> Path:
        return self._home if self._home is not None else Path.home()

    def tmpdir(self) -> Path:
        return self._tmpdir if self._tmpdir is not None else Path(tempfile.gettempdir())

    @staticmethod
    def join(*parts: PathLike) -> Path:
        return Path(*parts)

    @staticmethod
    def exists(path: PathLike) -> bool:
        return Path(path).exists()

    @staticmethod
    def mkdir(path: PathLike) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    @staticmethod
    def read_text(path: PathLike) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_text(self, path: PathLike, content: str) -> None:
        """Write content atomically, creating the parent directory first."""
        target = Path(path)
        self.mkdir(target.parent)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, target)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    @staticmethod
    def unlink(path: PathLike) -> None:
        Path(path).unlink()

    @staticmethod
    def listdir(path: PathLike) -> list[str]:
        return sorted(os.listdir(path))

    @staticmethod
    def size(path: PathLike) -> int:
        return Path(path).stat().st_size

    @staticmethod
    def chmod(path: PathLike, mode: int) -> None:
        try:
            os.chmod(path, mode)
        except OSError:
            # Not supported on every platform (e.g. some Windows filesystems)
            pass
