"""Unit tests for filesystem storage adapter."""

from pathlib import Path

from fiscalsync.adapters.storage.filesystem import FilesystemAdapter


class TestFilesystemAdapter:
    """Tests for FilesystemAdapter."""

    def test_write_creates_parents(self, tmp_path: Path) -> None:
        path = tmp_path / "NFE" / "saida" / "2024" / "Marco" / "1001.xml"
        size = FilesystemAdapter().write(path, b"<NFe/>")
        assert path.read_bytes() == b"<NFe/>"
        assert size == 6

    def test_write_replaces_existing(self, tmp_path: Path) -> None:
        path = tmp_path / "1001.xml"
        path.write_bytes(b"old content")
        FilesystemAdapter().write(path, b"<new/>")
        assert path.read_bytes() == b"<new/>"

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        FilesystemAdapter().write(tmp_path / "a.xml", b"<a/>")
        assert [p.name for p in tmp_path.iterdir()] == ["a.xml"]

    def test_remove(self, tmp_path: Path) -> None:
        path = tmp_path / "a.xml"
        path.write_bytes(b"<a/>")
        assert FilesystemAdapter().remove(path) is True
        assert not path.exists()

    def test_remove_missing(self, tmp_path: Path) -> None:
        assert FilesystemAdapter().remove(tmp_path / "gone.xml") is False
