import pytest
from unittest.mock import patch
from mediamirror.domain.errors import CopyError, DeleteError, FileAccessError, FilesystemError
from mediamirror.infrastructure.filesystem import LocalFilesystem


def test_copy_returns_bytes_written(tmp_path):
    src = tmp_path / "big.avi"
    payload = b"\x00\x01" * (512 * 1024 + 17)
    src.write_bytes(payload)
    dst = tmp_path / "copy.avi"

    written = LocalFilesystem().copy(src, dst)

    assert written == len(payload)
    assert dst.read_bytes() == payload


def test_copy_missing_source_raises(tmp_path):
    with pytest.raises(CopyError) as exc_info:
        LocalFilesystem().copy(tmp_path / "missing.avi", tmp_path / "out.avi")
    assert exc_info.value.path == tmp_path / "out.avi"


def test_copy_uses_shutil_and_wraps_errors(tmp_path):
    src = tmp_path / "a.avi"
    src.write_bytes(b"abc")

    with patch("mediamirror.infrastructure.filesystem.shutil.copyfile", side_effect=OSError("disk full")) as copyfile:
        with pytest.raises(CopyError, match="disk full"):
            LocalFilesystem().copy(src, tmp_path / "out.avi")

    copyfile.assert_called_once_with(src, tmp_path / "out.avi")


def test_size_of_missing_file_raises(tmp_path):
    with pytest.raises(FileAccessError):
        LocalFilesystem().size(tmp_path / "missing")


def test_delete(tmp_path):
    f = tmp_path / "a.avi"
    f.write_text("x")
    fs = LocalFilesystem()

    assert fs.delete(f) is True
    assert fs.delete(f) is False
    assert not fs.exists(f)


def test_delete_failure_raises_delete_error(tmp_path):
    f = tmp_path / "a.avi"
    f.write_text("x")

    with patch("pathlib.Path.unlink", side_effect=PermissionError("denied")):
        with pytest.raises(DeleteError):
            LocalFilesystem().delete(f)


def test_ensure_directory(tmp_path):
    fs = LocalFilesystem()
    fs.ensure_directory(tmp_path / "a" / "b")
    assert (tmp_path / "a" / "b").is_dir()

    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(FilesystemError):
        fs.ensure_directory(blocker / "child")


def test_is_readable(tmp_path):
    f = tmp_path / "a.avi"
    f.write_text("x")
    assert LocalFilesystem().is_readable(f) is True
    assert LocalFilesystem().is_readable(tmp_path / "missing") is False
