import abc
import enum
from dataclasses import dataclass
from typing import Union, Any, Dict, Optional, AsyncIterator, Callable, BinaryIO

from .typehints import Connection, Sink


class CaseInsensitiveDict(dict):
    """
    A class that works absolutely like usual dict, but keys are case-insensitive
    Do not try to make him work with anything that is not bytes or a string!
    """

    def __init__(self, *args, **kwargs):
        # it's really faster to call super() once
        # and get it from self, than call it every time
        self.__parent = super()
        super().__init__()

        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def __getitem__(self, item: Union[str, bytes]) -> Any:
        return self.__parent.__getitem__(item.lower())

    def __setitem__(self, key: Union[str, bytes], value: Any) -> None:
        self.__parent.__setitem__(key.lower(), value)

    def __delitem__(self, key: Union[str, bytes]) -> None:
        self.__parent.__delitem__(key.lower())

    def __contains__(self, item: Union[str, bytes]) -> bool:
        return self.__parent.__contains__(item.lower())

    def get(self, item: Union[str, bytes], instead: Any = None) -> Any:
        return self.__parent.get(item.lower(), instead)

    def pop(self, key: Union[str, bytes], *default) -> Any:
        return self.__parent.pop(key.lower(), *default)

    def setdefault(self, key: Union[str, bytes], default: Any = None) -> Any:
        return self.__parent.setdefault(key.lower(), default)

    def update(self, other=(), **kwargs):
        self.__parent.update(
            {key.lower(): value for key, value in dict(other, **kwargs).items()}
        )

    def copy(self) -> 'CaseInsensitiveDict':
        return CaseInsensitiveDict(self.items())


class TransferStrategy(enum.Enum):
    ASYNC_WHOLE_FILE = 'asyncFile'
    ASYNC_CHUNKED_BUFFER = 'asyncBuffer'
    ASYNC_CHUNK_STREAM = 'asyncMultiBuffer'
    BLOCKING_STREAM = 'stream'
    BLOCKING_WHOLE_BUFFER = 'byteArray'
    BLOCKING_WHOLE_BUFFER_LIGHTWEIGHT = 'byteArrayVirtual'


class ExecutionContext(enum.Enum):
    EVENT_LOOP = 'event-loop'
    BOUNDED_WORKER_POOL = 'bounded-worker-pool'
    LIGHTWEIGHT_THREAD_POOL = 'lightweight-thread-pool'


@dataclass(frozen=True)
class FileHandle:
    name: str
    path: str
    size: int


@dataclass(frozen=True)
class Chunk:
    data: bytes
    last: bool = False


@dataclass
class StrategyResult:
    """
    What a strategy hands to the response assembler. Exactly one of the
    payload fields is set, depending on the strategy. `chunks_source` is
    the open async file `chunks` are read from, closed by the body producer
    even if the chunks are never iterated
    """

    strategy: TransferStrategy
    handle: FileHandle
    buffer: Optional[Union[bytes, bytearray]] = None
    chunks: Optional[AsyncIterator[Chunk]] = None
    file: Optional[BinaryIO] = None
    stream: Optional[Callable[[Sink], int]] = None
    chunks_source: Optional[Any] = None


class BodyProducer(abc.ABC):
    """
    Writes response body to the connection after the head was already sent
    """

    @abc.abstractmethod
    async def send(self, conn: Connection) -> int:
        """
        Returns how many body bytes were written
        """

    async def discard(self) -> None:
        """
        Called instead of send() when the body will never be written,
        for example when connection is already gone
        """


class Request:
    def __init__(self):
        self.method: Optional[bytes] = None
        self.path: Optional[bytes] = None
        self.fragment: Optional[bytes] = None
        self.raw_parameters: Optional[bytes] = None
        self.protocol: Optional[str] = None
        self.headers: Optional[CaseInsensitiveDict] = None
        self.body: bytes = b''
        self.keep_alive: bool = True

        # values of <tags> from the route template the request matched
        self.path_params: Dict[str, str] = {}

        # Purpose of context in request is only for exchanging some data between
        # dispatcher and handlers
        self.ctx: dict = {}

    def wipe(self):
        """
        A method that clears path, body and headers attributes
        The purpose of this function is not to let already processed
        requests live longer than it should
        """

        self.method = None
        self.path = None
        self.fragment = None
        self.raw_parameters = None
        self.protocol = None
        self.headers = None
        self.body = b''
        self.keep_alive = True
        self.path_params = {}
        self.ctx.clear()


class Response:
    """
    Response class is just a storage
    The actual response will happen after it will be returned
    """

    def __init__(self, default_headers: CaseInsensitiveDict):
        self.default_headers = default_headers

        self.code: int = 200
        self.status: Optional[bytes] = None
        self.headers: CaseInsensitiveDict = default_headers.copy()
        self.body: bytes = b''
        self.producer: Optional[BodyProducer] = None

    def wipe(self):
        self.code = 200
        self.status = None
        self.headers = self.default_headers.copy()
        self.body = b''
        self.producer = None

    def __call__(self,
                 code: int = 200,
                 status: Optional[bytes] = None,
                 headers: Optional[dict] = None,
                 body: Union[bytes, str] = b'',
                 producer: Optional[BodyProducer] = None
                 ):
        self.code = code
        self.status = status
        self.body = body if isinstance(body, bytes) else body.encode()
        self.producer = producer

        if headers:
            self.headers.update(headers)

        return self
