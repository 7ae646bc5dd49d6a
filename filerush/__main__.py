import logging
import argparse
from sys import exit, argv
from typing import List, Optional

from .app import DownloadApp
from .samples import generate_samples, DEFAULT_SIZES
from .webserver import WebServer, Settings

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


def get_kwargs_from_argparse_namespace(namespace, none_as_null=True, ignore=()):
    kwargs = {}

    for var, val in vars(namespace).items():
        if (val is None and none_as_null) or var in ignore:
            continue

        kwargs[var] = val

    return kwargs


def serve(root: str, log_level: str = 'INFO', **settings_kwargs) -> None:
    settings = Settings(root=root, **settings_kwargs)
    settings.logger.setLevel(log_level)
    logging.getLogger().setLevel(log_level)

    WebServer(settings).run(DownloadApp(settings))


def generate(root: str, sizes: Optional[List[int]] = None, count: int = 1,
             log_level: str = 'INFO') -> None:
    logging.getLogger().setLevel(log_level)
    generate_samples(root, sizes or DEFAULT_SIZES, count)


aliases = {
    'serve': serve,
    'generate': generate,
}


def build_parser() -> argparse.ArgumentParser:
    arguments_parser = argparse.ArgumentParser(
        prog='filerush',
        description='Serves files of a directory using different I/O strategies'
    )
    arguments_parser.add_argument('cmd', metavar='command', choices=sorted(aliases))
    arguments_parser.add_argument('--root', required=True,
                                  help='directory with files to be served (or generated)')
    arguments_parser.add_argument('--log-level', dest='log_level', default='INFO',
                                  choices=LOG_LEVELS)

    serving = arguments_parser.add_argument_group('serve')
    serving.add_argument('--host')
    serving.add_argument('--port', type=int)
    serving.add_argument('--workers', type=int,
                         help='size of the bounded worker pool (default: 2 * cpu cores)')
    serving.add_argument('--carriers', type=int,
                         help='carrier threads of lightweight threads (default: cpu cores)')
    serving.add_argument('--chunk-size', dest='chunk_size', type=int)
    serving.add_argument('--timeout', dest='transfer_timeout', type=float,
                         help='seconds a client may not accept data before transfer is aborted')
    serving.add_argument('--uvloop', dest='use_uvloop', action='store_true', default=None)

    generating = arguments_parser.add_argument_group('generate')
    generating.add_argument('--sizes', type=int, nargs='+', metavar='MB')
    generating.add_argument('--count', type=int)

    return arguments_parser


def run_cmd(cmd: List[str]) -> int:
    arguments_parser = build_parser()
    parsed = arguments_parser.parse_args(cmd)
    handler = aliases[parsed.cmd]

    if parsed.cmd == 'serve':
        ignore = ('cmd', 'sizes', 'count')
    else:
        ignore = ('cmd', 'host', 'port', 'workers', 'carriers', 'chunk_size',
                  'transfer_timeout', 'use_uvloop')

    handler(**get_kwargs_from_argparse_namespace(parsed, ignore=ignore))

    return 0


def main():
    exit(run_cmd(argv[1:]))


if __name__ == '__main__':
    main()
