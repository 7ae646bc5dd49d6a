status_codes = {
    100: b'Continue',
    200: b'OK',
    204: b'No Content',
    206: b'Partial Content',
    301: b'Moved Permanently',
    304: b'Not Modified',
    400: b'Bad Request',
    403: b'Forbidden',
    404: b'Not Found',
    405: b'Method Not Allowed',
    408: b'Request Timeout',
    413: b'Request Entity Too Large',
    414: b'Request-URI Too Long',
    500: b'Internal Server Error',
    501: b'Not Implemented',
    503: b'Service Unavailable',
    505: b'HTTP Version Not Supported',
}
