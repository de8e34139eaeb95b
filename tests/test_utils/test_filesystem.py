"""Tests for scratch-file helpers."""

from render_pipeline.utils.filesystem import build_temp_paths, ensure_temp_dir, remove_temp_file


class TestBuildTempPaths:
    def test_paths_live_in_temp_dir(self, tmp_path):
        paths = build_temp_paths(tmp_path, "projects/p1/assets/clip.mov")

        assert paths.input_path.parent == tmp_path
        assert paths.output_path.parent == tmp_path
        assert paths.input_path.name.startswith("clip_")
        assert paths.input_path.suffix == ".mov"
        assert paths.output_path.suffix == ".mp4"

    def test_paths_are_unique_per_call(self, tmp_path):
        first = build_temp_paths(tmp_path, "projects/p1/assets/clip.mp4")
        second = build_temp_paths(tmp_path, "projects/p1/assets/clip.mp4")

        assert first.input_path != second.input_path
        assert first.output_path != second.output_path
        assert first.input_path != first.output_path

    def test_traversal_in_key_is_neutralised(self, tmp_path):
        paths = build_temp_paths(tmp_path, "../../etc/pass wd;rm.mp4")

        assert paths.input_path.parent == tmp_path
        assert " " not in paths.input_path.name
        assert ";" not in paths.input_path.name

    def test_key_without_usable_name(self, tmp_path):
        paths = build_temp_paths(tmp_path, "projects/p1/assets/...")

        assert paths.input_path.name.startswith("asset_")


class TestEnsureTempDir:
    def test_creates_nested_directory(self, tmp_path):
        target = tmp_path / "a" / "b"

        assert ensure_temp_dir(target) == target
        assert target.is_dir()

    def test_existing_directory_is_fine(self, tmp_path):
        assert ensure_temp_dir(tmp_path) == tmp_path


class TestRemoveTempFile:
    def test_removes_file(self, tmp_path):
        path = tmp_path / "scratch.mp4"
        path.write_bytes(b"x")

        assert remove_temp_file(path) is True
        assert not path.exists()

    def test_missing_file_is_not_an_error(self, tmp_path):
        assert remove_temp_file(tmp_path / "never-created.mp4") is True

    def test_none_is_ignored(self):
        assert remove_temp_file(None) is True

    def test_failure_is_reported(self, tmp_path):
        directory = tmp_path / "not-a-file"
        directory.mkdir()

        assert remove_temp_file(directory) is False
        assert directory.exists()
