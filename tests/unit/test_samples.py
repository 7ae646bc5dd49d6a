"""
Unit tests for sample files generation and the command line.
"""

import os

import pytest

from filerush.__main__ import build_parser, run_cmd
from filerush.samples import create_sample, generate_samples, LINE_LENGTH, MEGABYTE


class TestSamples:
    def test_size_and_lines(self, tmp_path):
        path = create_sample(str(tmp_path / 'a.pdf'), 250_000, seed=1)

        with open(path, 'rb') as fd:
            data = fd.read()

        assert len(data) == 250_000
        assert data[LINE_LENGTH - 1::LINE_LENGTH] == b'\n' * (250_000 // LINE_LENGTH)
        assert set(data) <= set(b'abcdefghijklmnopqrstuvwxyz\n')

    def test_seed_makes_it_reproducible(self, tmp_path):
        first = create_sample(str(tmp_path / 'a'), 70_000, seed=5)
        second = create_sample(str(tmp_path / 'b'), 70_000, seed=5)

        with open(first, 'rb') as fd_a, open(second, 'rb') as fd_b:
            assert fd_a.read() == fd_b.read()

    def test_generate(self, tmp_path):
        created = generate_samples(str(tmp_path / 'files'), [1, 2], count=2)

        assert sorted(os.path.basename(path) for path in created) == [
            'fake1_001mb.pdf', 'fake1_002mb.pdf', 'fake2_001mb.pdf', 'fake2_002mb.pdf'
        ]
        assert os.path.getsize(str(tmp_path / 'files' / 'fake2_002mb.pdf')) == 2 * MEGABYTE


class TestCommandLine:
    def test_generate_command(self, tmp_path):
        root = str(tmp_path / 'generated')

        assert run_cmd(['generate', '--root', root, '--sizes', '1']) == 0
        assert os.listdir(root) == ['fake1_001mb.pdf']

    def test_serve_options(self):
        parsed = build_parser().parse_args([
            'serve', '--root', '.', '--port', '9000', '--workers', '3', '--timeout', '2.5'
        ])

        assert parsed.port == 9000
        assert parsed.workers == 3
        assert parsed.transfer_timeout == 2.5
        assert parsed.use_uvloop is None

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['delete', '--root', '.'])
