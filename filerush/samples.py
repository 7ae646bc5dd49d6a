"""
Sample files for load runs and tests. Content is random lowercase text
broken into lines of 100 characters, so files are incompressible enough
and still easy to diff
"""

import os
import random
import logging
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

MEGABYTE = 1024 * 1024
LINE_LENGTH = 100
WRITE_BLOCK = 64 * 1024
SAMPLE_NAME_PATTERN = 'fake{index}_{size:03d}mb.pdf'
DEFAULT_SIZES = (1, 2, 5, 10, 20, 50, 100)
LETTERS = bytes(97 + value % 26 for value in range(256))


def _text_block(rnd: random.Random, length: int, position: int) -> bytes:
    block = bytearray(rnd.randbytes(length).translate(LETTERS))

    # every LINE_LENGTH-th character of the file is a newline
    first = (LINE_LENGTH - 1 - position) % LINE_LENGTH
    block[first::LINE_LENGTH] = b'\n' * len(range(first, length, LINE_LENGTH))

    return bytes(block)


def create_sample(path: str, size: int, seed: Optional[int] = None) -> str:
    rnd = random.Random(seed)
    written = 0

    with open(path, 'wb') as fd:
        while written < size:
            length = min(WRITE_BLOCK, size - written)
            fd.write(_text_block(rnd, length, written))
            written += length

    logger.debug(f'created sample {path} ({size} bytes)')

    return path


def generate_samples(root: str,
                     sizes_mb: Iterable[int] = DEFAULT_SIZES,
                     count: int = 1) -> List[str]:
    os.makedirs(root, exist_ok=True)
    created = []

    for size in sizes_mb:
        for index in range(1, count + 1):
            path = os.path.join(root, SAMPLE_NAME_PATTERN.format(index=index, size=size))
            created.append(create_sample(path, size * MEGABYTE))
            logger.info(f'generated {path}')

    return created
