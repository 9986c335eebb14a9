"""
Tests for storage key resolution and FFmpeg argument building.
"""

import pytest

from reelhouse.execution.commands import build_still_video_args
from reelhouse.storage.files import FileStore, UnsafeStorageKeyError


class TestFileStore:

    def test_ensure_layout(self, tmp_path):
        files = FileStore(tmp_path / "data")
        files.ensure_layout()

        assert (tmp_path / "data" / "uploads").is_dir()
        assert (tmp_path / "data" / "output").is_dir()

    def test_resolve_stays_inside_data_dir(self, file_store):
        path = file_store.resolve("uploads/cover.png")
        assert path == file_store.data_dir / "uploads" / "cover.png"

    def test_leading_slash_is_relative(self, file_store):
        assert file_store.resolve("/uploads/a.png") == file_store.data_dir / "uploads" / "a.png"

    @pytest.mark.parametrize("key", ["", "   ", "../secret", "uploads/../../secret"])
    def test_unsafe_keys_rejected(self, file_store, key):
        with pytest.raises(UnsafeStorageKeyError):
            file_store.resolve(key)

    def test_exists(self, file_store, inputs):
        image_key, _ = inputs
        assert file_store.exists(image_key)
        assert not file_store.exists("uploads/other.png")
        assert not file_store.exists("uploads")  # directories are not files
        assert not file_store.exists("../outside.png")

    def test_url_for_quotes_whole_key(self, file_store):
        assert file_store.url_for("output/video 1.mp4") == "/api/files/output%2Fvideo%201.mp4"

    def test_new_output_keys_are_unique(self, file_store):
        first = file_store.new_output_key()
        second = file_store.new_output_key()

        assert first != second
        assert first.startswith("output/video_")
        assert first.endswith(".mp4")

    def test_new_upload_key_keeps_lowercased_extension(self, file_store):
        key = file_store.new_upload_key(".JPG")

        assert key.startswith("uploads/")
        assert key.endswith(".jpg")
        assert key != file_store.new_upload_key(".JPG")

    @pytest.mark.parametrize("ext", ["", ".p/ng", "..x", ".tar.gz", "jpg"])
    def test_new_upload_key_drops_odd_extensions(self, file_store, ext):
        key = file_store.new_upload_key(ext)

        assert "." not in key
        assert key.count("/") == 1


class TestStillVideoArgs:

    def test_without_duration_stops_with_audio(self):
        args = build_still_video_args("/d/img.png", "/d/song.mp3", "/d/out.mp4")

        assert args == [
            "-y", "-loop", "1", "-i", "/d/img.png", "-i", "/d/song.mp3",
            "-shortest",
            "-c:v", "libx264", "-tune", "stillimage", "-pix_fmt", "yuv420p",
            "-c:a", "aac", "/d/out.mp4",
        ]

    def test_duration_clamp(self):
        args = build_still_video_args("/d/img.png", "/d/song.mp3", "/d/out.mp4", duration_sec=30)

        assert args[7:9] == ["-t", "30"]
        assert "-shortest" not in args

    def test_non_positive_duration_ignored(self):
        args = build_still_video_args("/d/img.png", "/d/song.mp3", "/d/out.mp4", duration_sec=0)
        assert "-t" not in args
