import pytest

from partwise import cli
from partwise.transfer.errors import SessionNotFound
from partwise.transfer.progress import ProgressSnapshot


def test_upload_arguments():
    args = cli.build_parser().parse_args(
        ["--coordinator", "http://coord", "upload", "a.bin", "--part-size", "6000000"]
    )

    assert args.command == "upload"
    assert args.coordinator == "http://coord"
    assert args.part_size == 6000000
    assert args.concurrency == 4
    assert args.max_attempts == 3


def test_coordinator_url_from_environment(monkeypatch):
    monkeypatch.setenv("PARTWISE_COORDINATOR_URL", "http://from-env")

    args = cli.build_parser().parse_args(["list"])

    assert args.coordinator == "http://from-env"


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_main_reports_upload_errors(monkeypatch, capsys):
    async def fail(args):
        raise SessionNotFound("Upload session s-1 not found")

    monkeypatch.setattr(cli, "_run", fail)

    assert cli.main(["abort", "s-1", "k.bin"]) == 1
    assert "s-1 not found" in capsys.readouterr().err


def test_main_returns_run_status(monkeypatch):
    async def succeed(args):
        return 0

    monkeypatch.setattr(cli, "_run", succeed)

    assert cli.main(["list"]) == 0


def test_progress_bar(capsys):
    cli.progress_bar(ProgressSnapshot(5, 10, 1, 2))
    cli.progress_bar(ProgressSnapshot(10, 10, 2, 2))

    out = capsys.readouterr().out
    assert "|##########----------| 50% (1/2 parts)" in out
    assert out.endswith("100% (2/2 parts)\n")


def test_small_part_size_fails_before_any_request(tmp_path, capsys):
    path = tmp_path / "a.bin"
    path.write_bytes(b"data")

    status = cli.main(
        ["--coordinator", "http://127.0.0.1:9", "upload", str(path), "--part-size", "1024"]
    )

    assert status == 1
    assert "part_size must be at least" in capsys.readouterr().err
