"""
Storage is a flat read-only directory with files that are served to user by
their names. Implementations only locate files and report their sizes, the
bytes themselves are read by the transfer subsystem
"""

import abc

from ..entities import FileHandle


class FileStore(abc.ABC):
    root: str

    @abc.abstractmethod
    def resolve(self, name: str) -> FileHandle:
        """
        Resolve a file name against the root directory. Blocks the calling
        thread on a stat call

        Raises exceptions.NotFoundError if file is missing or name is invalid
        """

    @abc.abstractmethod
    async def resolve_async(self, name: str) -> FileHandle:
        """
        Same as resolve(), but does not block event loop
        """

    @abc.abstractmethod
    def size(self, handle: FileHandle) -> int:
        """
        Current size of the file in bytes

        Raises exceptions.TransferIOError if metadata can't be read
        """
