"""Tests for the command-line entrypoint."""
import json

import pytest

from sequence_manager import cli
from sequence_manager.cli import main


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda level=None: None)


def run(capsys, *argv):
    code = main(list(argv))
    captured = capsys.readouterr()
    return code, captured.out, captured.err


class TestCli:
    def test_ingest_commit_list(self, tmp_path, capsys, photo_dir, gpx_file):
        out_dir = str(tmp_path / "out")

        code, _, _ = run(capsys, "--output-dir", out_dir, "ingest", photo_dir, "--name", "walk")
        assert code == 0

        code, out, _ = run(
            capsys, "--output-dir", out_dir, "commit", "--name", "walk", "--camera", "Cam", "--track", gpx_file
        )
        assert code == 0
        assert json.loads(out)["photo_count"] == 3

        code, out, _ = run(capsys, "--output-dir", out_dir, "list")
        assert code == 0
        assert [item["name"] for item in json.loads(out)] == ["walk"]

    def test_commit_from_file(self, tmp_path, capsys, photo_dir, gpx_file):
        out_dir = str(tmp_path / "out")
        sequence_file = tmp_path / "walk.yaml"
        sequence_file.write_text(f"name: walk\ncamera: Cam\ntrack_path: {gpx_file}\n", encoding="utf-8")
        run(capsys, "--output-dir", out_dir, "ingest", photo_dir, "--name", "walk")

        code, out, _ = run(capsys, "--output-dir", out_dir, "commit", "--from-file", str(sequence_file))

        assert code == 0
        assert json.loads(out)["name"] == "walk"

    def test_errors_go_to_stderr(self, tmp_path, capsys):
        code, out, err = run(capsys, "--output-dir", str(tmp_path / "out"), "remove", "missing")
        assert code == 0
        assert json.loads(out) == {"removed": False}

        code, out, err = run(capsys, "--output-dir", str(tmp_path / "out"), "link", "missing", "ext")
        assert code == 1
        assert out == ""
        assert "Unknown sequence id" in err

    def test_track_command(self, tmp_path, capsys, gpx_file):
        code, out, _ = run(capsys, "--output-dir", str(tmp_path / "out"), "track", gpx_file)
        assert code == 0
        assert json.loads(out)[0]["timestamp"] == "2021-05-01T12:00:00Z"

    def test_bad_config_file(self, tmp_path, capsys):
        code, _, err = run(capsys, "--config", str(tmp_path / "missing.yaml"), "list")
        assert code == 1
        assert "Failed to load configuration" in err
