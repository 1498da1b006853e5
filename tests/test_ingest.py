"""Tests for photo-folder and video ingestion."""
import json
import os
import subprocess
from unittest.mock import patch

import pytest
from PIL import Image

from conftest import T0, make_photo
from sequence_manager.errors import IngestError
from sequence_manager.ingest import ingest_directory, ingest_video, parse_iso6709, video_start_time


class TestIngestDirectory:
    def test_points_sorted_by_capture_time(self, tmp_path):
        folder = tmp_path / "photos"
        folder.mkdir()
        make_photo(folder / "a.jpg", taken=T0.replace(second=30))
        make_photo(folder / "b.jpg", taken=T0, gps=(46.5, -7.25, 420.0))
        make_photo(folder / "c.png")

        result = ingest_directory(str(folder))

        names = [point["original_name"] for point in result["points"]]
        assert names[:2] == ["b.jpg", "a.jpg"]
        first = result["points"][0]
        assert first["captured_at"] == "2021-05-01T12:00:00Z"
        assert first["native_latitude"] == pytest.approx(46.5, abs=1e-6)
        assert first["native_longitude"] == pytest.approx(-7.25, abs=1e-6)
        assert first["native_altitude"] == pytest.approx(420.0)
        assert (first["width"], first["height"]) == (64, 48)
        assert result["points"][1]["native_latitude"] is None
        assert result["removed_files"] == []

    def test_rejects_other_extensions(self, tmp_path):
        folder = tmp_path / "photos"
        folder.mkdir()
        make_photo(folder / "a.jpg")
        make_photo(folder / "b.jpg")
        (folder / "notes.txt").write_text("hi", encoding="utf-8")
        with pytest.raises(IngestError, match="jpeg, jpg or png"):
            ingest_directory(str(folder))

    def test_requires_two_images(self, tmp_path):
        folder = tmp_path / "photos"
        folder.mkdir()
        make_photo(folder / "a.jpg")
        with pytest.raises(IngestError, match="More than one image"):
            ingest_directory(str(folder))

    def test_hidden_files_ignored(self, photo_dir):
        with open(os.path.join(photo_dir, ".DS_Store"), "w", encoding="utf-8") as handle:
            handle.write("x")
        assert len(ingest_directory(photo_dir)["points"]) == 3

    def test_corrupted_image_fails_by_default(self, photo_dir):
        with open(os.path.join(photo_dir, "img_1.jpg"), "wb") as handle:
            handle.write(b"broken")
        with pytest.raises(IngestError, match="Unreadable"):
            ingest_directory(photo_dir)

    def test_corrupted_image_skipped_on_request(self, photo_dir):
        with open(os.path.join(photo_dir, "img_1.jpg"), "wb") as handle:
            handle.write(b"broken")
        result = ingest_directory(photo_dir, skip_corrupted=True)
        assert len(result["points"]) == 2
        assert result["removed_files"] == ["img_1.jpg"]

    def test_missing_folder(self, tmp_path):
        with pytest.raises(IngestError, match="not found"):
            ingest_directory(str(tmp_path / "nope"))


class TestIso6709:
    def test_with_altitude(self):
        assert parse_iso6709("+50.8019+012.9069+311.398/") == (50.8019, 12.9069, 311.398)

    def test_without_altitude(self):
        assert parse_iso6709("-33.8688+151.2093/") == (-33.8688, 151.2093, None)

    def test_garbage(self):
        assert parse_iso6709("somewhere") is None
        assert parse_iso6709("") is None


class TestIngestVideo:
    PROBE = {
        "format": {
            "tags": {
                "creation_time": "2021-05-01T12:00:00.000000Z",
                "com.apple.quicktime.location.ISO6709": "+46.0000+007.0000+500.000/",
            }
        },
        "streams": [],
    }

    def fake_run(self, cmd, **kwargs):
        if os.path.basename(cmd[0]).startswith("ffprobe"):
            return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(self.PROBE), stderr="")
        pattern = cmd[-1]
        for index in range(1, 4):
            Image.new("RGB", (32, 16), (index * 40, 0, 0)).save(pattern % index, "JPEG")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def test_frames_stamped_from_start_time(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"\x00")
        out_dir = tmp_path / "frames"

        with patch("sequence_manager.ingest.subprocess.run", side_effect=self.fake_run) as run:
            result = ingest_video(str(video), str(out_dir), frames_per_second=2.0)

        ffmpeg_cmd = run.call_args_list[1].args[0]
        assert "fps=2.0" in ffmpeg_cmd
        points = result["points"]
        assert [point["original_name"] for point in points] == [
            "frame_000001.jpg",
            "frame_000002.jpg",
            "frame_000003.jpg",
        ]
        assert [point["captured_at"] for point in points] == [
            "2021-05-01T12:00:00Z",
            "2021-05-01T12:00:00.500000Z",
            "2021-05-01T12:00:01Z",
        ]
        assert all(point["native_latitude"] == 46.0 for point in points)
        assert points[0]["native_altitude"] == 500.0
        assert (points[0]["width"], points[0]["height"]) == (32, 16)

    def test_ffmpeg_failure(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"\x00")

        def failing(cmd, **kwargs):
            if os.path.basename(cmd[0]).startswith("ffprobe"):
                return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(self.PROBE), stderr="")
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="decode error")

        with patch("sequence_manager.ingest.subprocess.run", side_effect=failing):
            with pytest.raises(IngestError, match="decode error"):
                ingest_video(str(video), str(tmp_path / "frames"))
        assert not (tmp_path / "frames").exists()

    def test_missing_ffprobe(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"\x00")
        with patch("sequence_manager.ingest.subprocess.run", side_effect=FileNotFoundError("ffprobe")):
            with pytest.raises(IngestError, match="ffprobe"):
                ingest_video(str(video), str(tmp_path / "frames"))

    def test_start_time_falls_back_to_stream_tags(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"\x00")
        probe = {"format": {}, "streams": [{"tags": {"creation_time": "2021-05-01T12:00:00Z"}}]}
        assert video_start_time(probe, str(video)) == T0
