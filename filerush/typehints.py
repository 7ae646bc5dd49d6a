import asyncio
from typing import Callable, Awaitable, Union, Protocol

AsyncFunction = Callable[..., Awaitable]
RoutePath = Union[str, bytes]
HTTPMethod = bytes


class Connection(Protocol):
    """
    What body producers need from a client connection. Implemented by the
    asyncio protocol of the http server
    """

    loop: asyncio.AbstractEventLoop
    transport: asyncio.Transport

    def write(self, data: bytes) -> None:
        ...

    async def drain(self) -> None:
        ...

    def is_closing(self) -> bool:
        ...

    def abort(self) -> None:
        ...


class Sink(Protocol):
    """
    Blocking destination of a streaming transfer
    """

    def write(self, data: bytes) -> None:
        ...

    def flush(self) -> None:
        ...


class Logger(Protocol):
    def debug(self, text: str) -> None:
        ...

    def info(self, text: str) -> None:
        ...

    def warning(self, text: str) -> None:
        ...

    def error(self, text: str) -> None:
        ...

    def critical(self, text: str) -> None:
        ...

    def exception(self, text: str) -> None:
        ...
