import logging
from asyncio import iscoroutinefunction
from typing import Dict, Callable, Awaitable, Union, Type, Iterable, List, Optional, Tuple

from .. import exceptions
from .base import BaseDispatcher
from ..entities import Request, Response
from ..utils.pathcomp import is_template, compare_paths
from ..utils.httputils import HTTP_METHODS, render_http_head
from ..typehints import RoutePath, AsyncFunction, HTTPMethod, Logger, Connection

ErrorHandler = Callable[[Request, Response, Exception], Awaitable[Response]]


def _make_sure_str(obj: RoutePath) -> str:
    return obj.decode() if isinstance(obj, bytes) else obj


class Handler:
    """
    A class that describes handler. Keeps it routing path,
    methods, etc.
    """

    def __init__(self,
                 handler: Callable[[Request, Response], Awaitable[Response]],
                 path: str,
                 methods: Iterable[bytes]):
        self.handler = handler
        self.path = path
        self.methods = set(methods)
        self.template = is_template(path)


class AsyncDispatcher(BaseDispatcher):
    def __init__(self, logger: Logger = None):
        if logger is None:
            self.logger = logging.getLogger(__name__)
        else:
            self.logger = logger

        self.usual_handlers: Dict[str, Handler] = {}
        # paths with <tags>, matched in order of registration
        self.template_handlers: List[Handler] = []

        # a dict with exceptions and handlers of the exceptions
        self.error_handlers: Dict[Type[Exception], ErrorHandler] = {}

    async def process_request(self,
                              request: Request,
                              response: Response,
                              conn: Connection) -> bool:
        handler, path_params = self._find_handler(request.path.decode('utf-8', 'replace'))

        if handler is None:
            result = await self._handle_exception(
                request, response,
                exceptions.HTTPNotFound(request, msg='no handlers attached for the request')
            )
        elif request.method not in handler.methods:
            result = await self._handle_exception(
                request, response,
                exceptions.HTTPMethodNotAllowed(request, msg=f'{request.method!r} is not allowed')
            )
        else:
            request.path_params = path_params

            try:
                result = await handler.handler(request, response)
            except Exception as exc:
                result = await self._handle_exception(request, response, exc)

        return await self._send_response(request, result, conn)

    def route(self,
              path: RoutePath,
              method: Union[str, bytes, None] = None,
              methods: Iterable[HTTPMethod] = HTTP_METHODS):
        if method is not None:
            methods = {(method if isinstance(method, bytes) else method.encode()).upper()}

        def deco(coro: Callable[[Request, Response], Awaitable[Response]]):
            if not methods:
                raise exceptions.NoMethodsProvided(str(coro))

            if not iscoroutinefunction(coro):
                raise exceptions.HandlerMustBeCoroutineError(str(coro))

            self._put_handler(Handler(
                handler=coro,
                path=_make_sure_str(path),
                methods=methods
            ))

            return coro

        return deco

    def get(self, path: RoutePath):
        return self.route(path, 'GET')

    def handle_error(self, error: Type[Exception]):
        def deco(coro: AsyncFunction):
            self.error_handlers[error] = coro

            return coro

        return deco

    async def _send_response(self,
                             request: Request,
                             response: Response,
                             conn: Connection) -> bool:
        keep_alive = request.keep_alive

        if not keep_alive:
            response.headers['connection'] = 'close'

        producer = response.producer

        if conn.is_closing():
            if producer is not None:
                await producer.discard()

            return False

        if producer is None and 'content-length' not in response.headers:
            response.headers['content-length'] = len(response.body)

        head = render_http_head(
            protocol=(request.protocol or '1.1').encode(),
            code=response.code,
            status_code=response.status,  # status can be None
            headers=response.headers
        )

        if producer is None:
            conn.write(head + response.body)

            return keep_alive

        conn.write(head)

        try:
            await producer.send(conn)
        except (exceptions.TransferIOError, exceptions.NotFoundError, ConnectionError) as exc:
            # head is already sent, so closing the connection is the only way
            # to tell the client that the body is incomplete
            self.logger.warning(f'{request.path.decode()}: transfer aborted: {exc}')
            conn.abort()

            return False
        except Exception:   # noqa: same as above, but this one is most of all a bug
            self.logger.exception(f'{request.path.decode()}: unexpected error while sending body:')
            conn.abort()

            return False

        return keep_alive

    async def _handle_exception(self,
                                request: Request,
                                response: Response,
                                exc: Exception) -> Response:
        err_handler = self._get_error_handler(exc.__class__)

        if err_handler is None:
            if isinstance(exc, exceptions.HTTPError):
                # no handlers attached, but as we have HTTPError,
                # the code is already known
                return response(code=exc.code, status=exc.description,
                                headers={'content-length': 0})

            self.logger.exception('no error handlers registered for exception:')

            return self._internal_error(response)

        try:
            return await err_handler(request, response, exc)
        except Exception:   # noqa: again I need to catch all the exceptions here
            self.logger.exception('uncaught exception in error handler:')

            return self._internal_error(response)

    @staticmethod
    def _internal_error(response: Response) -> Response:
        response.wipe()

        return response(
            code=exceptions.HTTPInternalServerError.code,
            status=exceptions.HTTPInternalServerError.description,
            headers={'content-length': 0}
        )

    def _get_error_handler(self, exc_class: Type[Exception]) -> Optional[ErrorHandler]:
        for exception_class in exc_class.mro():
            if exception_class in self.error_handlers:
                return self.error_handlers[exception_class]  # noqa

        return None

    def _find_handler(self, path: str) -> Tuple[Optional[Handler], Dict[str, str]]:
        if path in self.usual_handlers:
            return self.usual_handlers[path], {}

        for handler in self.template_handlers:
            path_params = compare_paths(handler.path, path)

            if path_params is not None:
                return handler, path_params

        return None, {}

    def _put_handler(self, handler: Handler) -> None:
        if handler.template:
            self.template_handlers.append(handler)
        else:
            self.usual_handlers[handler.path] = handler
