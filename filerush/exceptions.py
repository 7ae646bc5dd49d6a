class FileRushError(Exception):
    """
    Basic exception
    """


class NotFoundError(FileRushError):
    """
    Raised when requested file does not exist, is not a regular file or
    its name points outside the root directory
    """

    def __init__(self, name: str, msg: str = 'file not found'):
        self.name = name
        super(NotFoundError, self).__init__(f'{name}: {msg}')


class TransferIOError(FileRushError):
    """
    Any read, stat or write failure while a file is being served
    """


class ClientDisconnectedError(TransferIOError):
    """
    Writing to the client failed, so there is no point to read the file further
    """


class TransferTimeoutError(TransferIOError):
    """
    Client did not accept written data in time
    """


class BlockingOnEventLoopError(FileRushError):
    """
    Blocking filesystem call was made from a thread that runs an event loop
    """


class WebServerError(FileRushError):
    pass


class HandlerMustBeCoroutineError(WebServerError):
    pass


class NoMethodsProvided(WebServerError):
    pass


class HTTPError(Exception):
    def __init__(self,
                 request,
                 **kwargs):
        self.request = request

        # an additional stash for dynamic values
        for key, value in kwargs.items():
            setattr(self, key, value)

        super(HTTPError, self).__init__(kwargs.get('msg', ''))


class HTTPBadRequest(HTTPError):
    code = 400
    description = b'Bad Request'


class HTTPNotFound(HTTPError):
    code = 404
    description = b'Not Found'


class HTTPMethodNotAllowed(HTTPError):
    code = 405
    description = b'Method Not Allowed'


class HTTPInternalServerError(HTTPError):
    code = 500
    description = b'Internal Server Error'
