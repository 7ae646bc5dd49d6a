import socket
import logging
from time import sleep
from typing import Tuple, Optional

logger = logging.getLogger(__name__)


def bind_with_retries(host: str,
                      port: int,
                      max_retries: int = 99999,
                      retries_timeout: float = 3) -> Tuple[Optional[socket.socket], int]:
    """
    Port may still be held by a previous run for a while, so binding is
    retried. Returns bound socket (None if all the retries failed) and
    count of attempts made
    """

    sock = socket.socket()
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, True)

    for attempt in range(1, max_retries + 1):
        try:
            sock.bind((host, port))

            return sock, attempt
        except OSError as exc:
            logger.debug(f'bind on {host}:{port} failed (attempt {attempt}): {exc}')

            if attempt != max_retries:
                sleep(retries_timeout)

    sock.close()

    return None, max_retries
