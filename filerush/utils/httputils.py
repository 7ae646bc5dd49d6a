from string import hexdigits
from typing import Union, Optional

from .status_codes import status_codes

HTTP_METHODS = {b'GET', b'HEAD', b'POST', b'PUT',
                b'DELETE', b'CONNECT', b'OPTIONS',
                b'TRACE', b'PATCH'}
HEX_TO_BYTE = {(a + b).encode(): bytes.fromhex(a + b)
               for a in hexdigits for b in hexdigits}
LAST_CHUNK = b'0\r\n\r\n'


def _render_headers(headers: Union[dict, bytes]) -> bytes:
    if isinstance(headers, bytes):
        return headers

    return '\r\n'.join(
        f'{key}: {value}' for key, value in headers.items()
    ).encode()


def render_http_head(protocol: bytes,
                     code: int,
                     status_code: Optional[bytes],
                     headers: Union[dict, bytes]) -> bytes:
    """
    Status line and headers, including the empty line after them. Body is
    expected to be sent right after it

    Arguments:
             protocol - protocol version, string in format `major.minor`,
             code - response status code,
             status_code - may be None, than it'll be taken from the list of known.
                           If no known status codes relate to the status code, UNKNOWN
                           will be used
             headers - a dict (or CaseInsensitiveDict) with headers. May be bytes, than
                       they won't be rendered
    """

    status_description = status_code or status_codes.get(code, b'UNKNOWN')

    return b'HTTP/%s %d %s\r\n%s\r\n\r\n' % (protocol, code, status_description,
                                             _render_headers(headers))


def render_http_response(protocol: bytes,
                         code: int,
                         status_code: Optional[bytes],
                         headers: Union[dict, bytes],
                         body: bytes,
                         count_content_length: bool = False) -> bytes:
    """
    The same as render_http_head(), but with body. If count_content_length is
    enabled and headers aren't already rendered, content-length header
    will be replaced by len(body)
    """

    if count_content_length and not isinstance(headers, bytes):
        headers['content-length'] = len(body)

    return render_http_head(protocol, code, status_code, headers) + body


def render_chunk(data: bytes) -> bytes:
    """
    One chunk of Transfer-Encoding: chunked body. Empty data is not
    allowed here as it would mean the end of the body, use LAST_CHUNK
    """

    return b'%x\r\n%s\r\n' % (len(data), data)


def decode_url(bytestring: bytes) -> bytes:
    bits = bytestring.split(b'%')
    decoded: bytes = bits[0]

    for item in bits[1:]:
        try:
            decoded += HEX_TO_BYTE[item[:2]] + item[2:]
        except KeyError:
            decoded += b'%' + item

    return decoded
