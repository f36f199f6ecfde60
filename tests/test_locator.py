import pytest

from drive_restore.core.locator import find_backup_file, find_backup_files
from drive_restore.exceptions import BackupNotFoundError, MultipleBackupFilesError


def _touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x")


def test_finds_nested_backup_file(tmp_path):
    _touch(tmp_path / "Susenas" / "2025" / "Susenas.bak")
    _touch(tmp_path / "readme.txt")

    assert find_backup_file(str(tmp_path)) == str(tmp_path / "Susenas" / "2025" / "Susenas.bak")


def test_suffix_match_ignores_case(tmp_path):
    _touch(tmp_path / "SUSENAS.BAK")

    assert find_backup_file(str(tmp_path)).endswith("SUSENAS.BAK")


def test_no_backup_file_raises(tmp_path):
    _touch(tmp_path / "data.mdf")

    with pytest.raises(BackupNotFoundError):
        find_backup_file(str(tmp_path))


def test_missing_directory_raises_not_found(tmp_path):
    with pytest.raises(BackupNotFoundError):
        find_backup_file(str(tmp_path / "never-extracted"))


def test_multiple_backup_files_raise(tmp_path):
    _touch(tmp_path / "b" / "two.bak")
    _touch(tmp_path / "a" / "one.bak")

    with pytest.raises(MultipleBackupFilesError) as exc_info:
        find_backup_file(str(tmp_path))

    assert exc_info.value.matches == [
        str(tmp_path / "a" / "one.bak"),
        str(tmp_path / "b" / "two.bak"),
    ]


def test_traversal_order_is_sorted(tmp_path):
    for name in ["z.bak", "m/x.bak", "a.bak"]:
        _touch(tmp_path / name)

    assert find_backup_files(str(tmp_path)) == [
        str(tmp_path / "a.bak"),
        str(tmp_path / "z.bak"),
        str(tmp_path / "m" / "x.bak"),
    ]
