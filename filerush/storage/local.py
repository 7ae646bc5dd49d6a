import os
import stat
import logging

import aiofiles.os

from .base import FileStore
from ..entities import FileHandle
from ..exceptions import NotFoundError, TransferIOError

logger = logging.getLogger(__name__)

FORBIDDEN_NAME_CHARS = ('/', '\\', '\x00')


class LocalFileStore(FileStore):
    """
    Files of a single directory on the local filesystem. Subdirectories are
    not served, so every valid name is exactly one path segment
    """

    def __init__(self, root: str):
        self.root = os.path.realpath(root)

    def resolve(self, name: str) -> FileHandle:
        path = self._path_for(name)

        try:
            file_stat = os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFoundError(name)
        except OSError as exc:
            raise TransferIOError(f'{name}: failed to stat: {exc}') from exc

        return self._handle_from_stat(name, path, file_stat)

    async def resolve_async(self, name: str) -> FileHandle:
        path = self._path_for(name)

        try:
            file_stat = await aiofiles.os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFoundError(name)
        except OSError as exc:
            raise TransferIOError(f'{name}: failed to stat: {exc}') from exc

        return self._handle_from_stat(name, path, file_stat)

    def size(self, handle: FileHandle) -> int:
        try:
            return os.stat(handle.path).st_size
        except OSError as exc:
            raise TransferIOError(f'{handle.name}: failed to read metadata: {exc}') from exc

    def _path_for(self, name: str) -> str:
        if not name or name in ('.', '..') or any(char in name for char in FORBIDDEN_NAME_CHARS):
            logger.debug(f'rejected file name {name!r}')
            raise NotFoundError(name, msg='invalid file name')

        # symlinks are allowed, but only while they stay inside the root
        path = os.path.realpath(os.path.join(self.root, name))

        if os.path.dirname(path) != self.root:
            logger.warning(f'file name {name!r} points outside the root directory')
            raise NotFoundError(name, msg='outside of root directory')

        return path

    @staticmethod
    def _handle_from_stat(name: str, path: str, file_stat: os.stat_result) -> FileHandle:
        if not stat.S_ISREG(file_stat.st_mode):
            raise NotFoundError(name, msg='not a regular file')

        return FileHandle(name=name, path=path, size=file_stat.st_size)
