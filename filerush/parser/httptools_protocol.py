from typing import Optional

from httptools import HttpRequestParser

from ..entities import Request, CaseInsensitiveDict
from ..utils.httputils import decode_url


class Protocol:
    """
    Callbacks for httptools parser that fill the request object. Request
    bodies are collected as is, downloads don't need them anyway
    """

    def __init__(self,
                 request_obj: Request,
                 ):
        self.request_obj = request_obj

        self.headers = CaseInsensitiveDict()
        self.received: bool = False

        self.parser: Optional[HttpRequestParser] = None

    def on_url(self, url: bytes):
        if b'%' in url:
            url = decode_url(url)

        parameters = fragment = None

        if b'?' in url:
            url, parameters = url.split(b'?', 1)

            if b'#' in parameters:
                parameters, fragment = parameters.split(b'#', 1)
        elif b'#' in url:
            url, fragment = url.split(b'#', 1)

        self.request_obj.path = url
        self.request_obj.raw_parameters = parameters
        self.request_obj.fragment = fragment
        self.request_obj.method = self.parser.get_method()

    def on_header(self, header: bytes, value: bytes):
        self.headers[header.decode('latin-1')] = value.decode('latin-1')

    def on_headers_complete(self):
        self.request_obj.protocol = self.parser.get_http_version()
        self.request_obj.headers = self.headers
        self.request_obj.keep_alive = self.parser.should_keep_alive()

    def on_body(self, body: bytes):
        self.request_obj.body += body

    def on_message_complete(self):
        self.received = True
