"""
Unit Tests: Command Line

Every test runs the CLI against the in-memory service (--memory), so
each invocation starts from an empty simulated deployment.
"""

import logging
import os

import pytest

from bucketmesh import __version__
from bucketmesh.__main__ import build_parser, main

MEMORY = ["--memory", "--memory-bucket", "photos=eu-west-1", "--log-level", "ERROR"]


@pytest.fixture(autouse=True)
def isolated(monkeypatch):
    """Clean BUCKETMESH_ environment; undo the CLI's logging setup."""
    for name in list(os.environ):
        if name.startswith("BUCKETMESH_"):
            monkeypatch.delenv(name)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestParser:
    """Tests for argument parsing."""

    def test_put_arguments(self):
        """Test that put options are parsed."""
        args = build_parser().parse_args([
            "put", "photos", "cat.jpg", "cat.jpg",
            "--strategy", "disk", "--meta", "owner=ops", "--meta", "team=infra",
        ])

        assert args.command == "put"
        assert args.strategy == "disk"
        assert args.meta == [("owner", "ops"), ("team", "infra")]

    def test_unknown_strategy_rejected(self):
        """Test that argparse refuses unknown strategies."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["put", "b", "k", "f", "--strategy", "tape"])

    def test_version(self, capsys):
        """Test --version output."""
        with pytest.raises(SystemExit):
            main(["--version"])

        assert __version__ in capsys.readouterr().out


class TestCommands:
    """Tests for each command against the simulated service."""

    def test_no_command_prints_help(self, capsys):
        """Test that a bare invocation fails with usage."""
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_region(self, capsys):
        """Test bucket region discovery."""
        assert main([*MEMORY, "region", "photos"]) == 0
        assert capsys.readouterr().out.strip() == "eu-west-1"

    def test_region_of_missing_bucket(self, capsys):
        """Test that a missing bucket is reported on stderr."""
        assert main([*MEMORY, "region", "nowhere"]) == 1
        assert "error:" in capsys.readouterr().err

    @pytest.mark.parametrize("strategy", ["memory", "disk", "multipart"])
    def test_put(self, tmp_path, capsys, strategy):
        """Test uploading a file through each strategy."""
        source = tmp_path / "notes.txt"
        source.write_bytes(b"hello from the cli\n")

        code = main([
            *MEMORY, "put", "photos", "notes.txt", str(source),
            "--strategy", strategy, "--meta", "owner=ops",
        ])

        out = capsys.readouterr().out
        assert code == 0
        assert "uploaded photos/notes.txt" in out
        assert f"19 bytes, {strategy}" in out

    def test_put_missing_file(self, tmp_path, capsys):
        """Test that an unreadable source file fails cleanly."""
        code = main([*MEMORY, "put", "photos", "k", str(tmp_path / "absent")])

        assert code == 1
        assert "cannot read" in capsys.readouterr().err

    def test_put_invalid_metadata(self, tmp_path, capsys):
        """Test that rejected metadata is reported."""
        source = tmp_path / "f"
        source.write_bytes(b"x")

        code = main([*MEMORY, "put", "photos", "k", str(source), "--meta", "bad key=v"])

        assert code == 1
        assert "rejected" in capsys.readouterr().err

    def test_get_missing_object(self, capsys):
        """Test that a missing object fails with an error."""
        assert main([*MEMORY, "get", "photos", "absent"]) == 1
        assert "not found" in capsys.readouterr().err

    def test_ls_and_rm_empty_bucket(self, capsys):
        """Test listing and deleting in an empty bucket."""
        assert main([*MEMORY, "ls", "photos"]) == 0
        assert main([*MEMORY, "rm", "photos", "absent"]) == 0
        assert capsys.readouterr().out == ""

    def test_metrics_output(self, tmp_path, capsys):
        """Test that --metrics prints Prometheus series after the command."""
        source = tmp_path / "f"
        source.write_bytes(b"x")

        code = main([*MEMORY, "--metrics", "put", "photos", "k", str(source)])

        out = capsys.readouterr().out
        assert code == 0
        assert 'bucketmesh_uploads_committed_total{strategy="memory"} 1.0' in out
        assert "# TYPE bucketmesh_commit_latency_seconds histogram" in out

    def test_bad_memory_bucket_option(self):
        """Test that a malformed --memory-bucket value aborts."""
        with pytest.raises(SystemExit):
            main(["--memory", "--memory-bucket", "photos", "region", "photos"])
