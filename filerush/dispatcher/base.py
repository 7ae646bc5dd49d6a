import abc

from ..typehints import Connection
from ..entities import Request, Response


class BaseDispatcher(abc.ABC):
    """
    A base class to be inherited of for all the dispatchers implementations
    """

    def on_begin_serving(self):
        """
        Just a callback after server starts working. May be useful
        in cases when something needs to be processed after initialization
        phase will be finished

        This method is optional
        """

    def on_stop_serving(self):
        """
        Called once the server is stopped. Resources acquired in
        on_begin_serving() are expected to be released here

        This method is optional
        """

    @abc.abstractmethod
    async def process_request(self,
                              request: Request,
                              response: Response,
                              conn: Connection) -> bool:
        """
        The only method we need from dispatcher. Writes the response into
        the connection and returns whether connection may be kept alive
        """
