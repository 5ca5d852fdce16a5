"""
Tests for adbsync.remote.parsers module.
"""

from datetime import datetime

from adbsync.remote.parsers import (
    find_size_index,
    is_device_missing,
    parse_adb_version,
    parse_devices_output,
    parse_df_output,
    parse_du_output,
    parse_ls_date,
    parse_ls_line,
    parse_ls_output,
    parse_stat_output,
)

NOW = datetime(2024, 6, 1, 12, 0)

RECURSIVE_LISTING = """\
/storage/emulated/0/DCIM:
total 8
drwxrwx--x 3 root sdcard_rw 4096 2024-01-15 10:30 Camera
-rw-rw---- 1 root sdcard_rw  123 2024-01-15 10:30 photo.jpg
lrwxrwxrwx 1 root root        21 2024-01-15 10:30 link -> /storage/emulated/0

/storage/emulated/0/DCIM/Camera:
total 4
-rw-rw---- 1 root sdcard_rw 2048 2024-01-16 09:15 IMG_0001.jpg
"""


class TestParseLsOutput:
    """Tests for parse_ls_output."""

    def test_recursive_listing(self) -> None:
        entries = parse_ls_output(
            RECURSIVE_LISTING,
            base_path="/storage/emulated/0/DCIM",
            root="/storage/emulated/0",
            now=NOW,
        )

        assert [(e.relative_path, e.is_directory) for e in entries] == [
            ("/DCIM/Camera", True),
            ("/DCIM/photo.jpg", False),
            ("/DCIM/Camera/IMG_0001.jpg", False),
        ]
        photo = entries[1]
        assert photo.absolute_path == "/storage/emulated/0/DCIM/photo.jpg"
        assert photo.size == 123
        assert photo.modified_at == datetime(2024, 1, 15, 10, 30)
        assert entries[2].size == 2048

    def test_root_defaults_to_base_path(self) -> None:
        output = "-rw-rw---- 1 root sdcard_rw 10 2024-01-15 10:30 a.txt\n"
        entries = parse_ls_output(output, base_path="/sdcard/Download", now=NOW)
        assert entries[0].relative_path == "/a.txt"
        assert entries[0].absolute_path == "/sdcard/Download/a.txt"

    def test_symlinks_are_dropped(self) -> None:
        entries = parse_ls_output(RECURSIVE_LISTING, base_path="/storage/emulated/0/DCIM", now=NOW)
        assert all(e.name != "link" for e in entries)

    def test_special_files_are_dropped(self) -> None:
        output = (
            "crw-rw-rw- 1 root root 1, 3 2024-01-15 10:30 null\n"
            "prw-r--r-- 1 root root    0 2024-01-15 10:30 fifo\n"
            "srwxrwxrwx 1 root root    0 2024-01-15 10:30 sock\n"
        )
        assert parse_ls_output(output, base_path="/dev", now=NOW) == []

    def test_blank_total_and_garbage_lines(self) -> None:
        output = "\ntotal 0\nls: /sdcard/private: Permission denied\n\n"
        assert parse_ls_output(output, base_path="/sdcard", now=NOW) == []

    def test_names_with_spaces(self) -> None:
        output = "-rw-rw---- 1 root sdcard_rw 10 2024-01-15 10:30 My  Holiday Photo.jpg\n"
        entries = parse_ls_output(output, base_path="/sdcard", now=NOW)
        assert entries[0].relative_path == "/My  Holiday Photo.jpg"

    def test_dot_entries_skipped(self) -> None:
        output = (
            "drwxrwx--x 3 root sdcard_rw 4096 2024-01-15 10:30 .\n"
            "drwxrwx--x 3 root sdcard_rw 4096 2024-01-15 10:30 ..\n"
            "drwxrwx--x 3 root sdcard_rw 4096 2024-01-15 10:30 Music\n"
        )
        entries = parse_ls_output(output, base_path="/sdcard", now=NOW)
        assert [e.name for e in entries] == ["Music"]

    def test_arrow_suffix_truncated(self) -> None:
        output = "drwxrwx--x 3 root sdcard_rw 4096 2024-01-15 10:30 obb -> /data/obb\n"
        entries = parse_ls_output(output, base_path="/sdcard", now=NOW)
        assert entries[0].name == "obb"

    def test_deterministic(self) -> None:
        first = parse_ls_output(RECURSIVE_LISTING, base_path="/storage/emulated/0/DCIM", now=NOW)
        second = parse_ls_output(RECURSIVE_LISTING, base_path="/storage/emulated/0/DCIM", now=NOW)
        assert first == second


class TestParseLsLine:
    """Tests for parse_ls_line column layouts."""

    def test_toolbox_layout_without_link_count(self) -> None:
        entry = parse_ls_line(
            "-rw-rw---- root sdcard_rw 500 2024-01-15 10:30 song.mp3", "/sdcard", "/sdcard", NOW
        )
        assert entry is not None
        assert entry.size == 500

    def test_extra_group_column(self) -> None:
        entry = parse_ls_line(
            "-rw-rw---- 1 u0_a12 u0_a12 everybody 77 2024-01-15 10:30 notes.txt",
            "/sdcard",
            "/sdcard",
            NOW,
        )
        assert entry is not None
        assert entry.size == 77
        assert entry.relative_path == "/notes.txt"

    def test_month_format(self) -> None:
        entry = parse_ls_line(
            "-rw-r--r-- 1 root root 64 Jan 15 10:30 a.txt", "/sdcard", "/sdcard", NOW
        )
        assert entry is not None
        assert entry.modified_at == datetime(2024, 1, 15, 10, 30)

    def test_month_format_with_year(self) -> None:
        entry = parse_ls_line(
            "-rw-r--r-- 1 root root 64 Mar  3  2021 old.txt", "/sdcard", "/sdcard", NOW
        )
        assert entry is not None
        assert entry.modified_at == datetime(2021, 3, 3)
        assert entry.name == "old.txt"

    def test_unparseable_size(self) -> None:
        assert parse_ls_line("-rw-r--r-- 1 root root big 2024-01-15 10:30 a", "/", "/", NOW) is None


class TestFindSizeIndex:
    """Tests for find_size_index."""

    def test_requires_following_date(self) -> None:
        assert find_size_index("-rw-r--r-- 1 1000 1000 55 2024-01-15 10:30 a".split()) == 4
        assert find_size_index("-rw-r--r-- 1 root root 55 nope".split()) is None


class TestParseLsDate:
    """Tests for parse_ls_date."""

    def test_iso_minutes(self) -> None:
        assert parse_ls_date(["2024-01-15", "10:30"], NOW) == datetime(2024, 1, 15, 10, 30)

    def test_iso_seconds(self) -> None:
        assert parse_ls_date(["2024-01-15", "10:30:45"], NOW) == datetime(2024, 1, 15, 10, 30, 45)

    def test_nanosecond_fraction_truncated(self) -> None:
        parsed = parse_ls_date(["2024-01-15", "10:30:45.123456789"], NOW)
        assert parsed == datetime(2024, 1, 15, 10, 30, 45, 123456)

    def test_future_month_date_is_last_year(self) -> None:
        assert parse_ls_date(["Dec", "24", "18:00"], NOW) == datetime(2023, 12, 24, 18, 0)

    def test_unknown_format_falls_back_to_now(self) -> None:
        assert parse_ls_date(["yesterday"], NOW) == NOW


class TestParseDevicesOutput:
    """Tests for parse_devices_output."""

    def test_parses_attributes(self) -> None:
        output = (
            "* daemon started successfully\n"
            "List of devices attached\n"
            "R58M123ABC             device usb:1-1 product:beyond1 model:SM_G973F device:beyond1\n"
            "192.168.1.20:5555      offline\n"
            "\n"
        )
        devices = parse_devices_output(output)

        assert len(devices) == 2
        assert devices[0]["serial"] == "R58M123ABC"
        assert devices[0]["state"] == "device"
        assert devices[0]["attributes"]["model"] == "SM_G973F"
        assert devices[1]["state"] == "offline"

    def test_no_devices(self) -> None:
        assert parse_devices_output("List of devices attached\n\n") == []


class TestSmallParsers:
    """Tests for du, df, stat and version parsing."""

    def test_du(self) -> None:
        assert parse_du_output("123456\t/sdcard/DCIM\n") == 123456
        assert parse_du_output("du: /sdcard/x: No such file\n") is None

    def test_df(self) -> None:
        output = (
            "Filesystem     1K-blocks     Used Available Use% Mounted on\n"
            "/dev/fuse      115000000 60000000  55000000  53% /storage/emulated\n"
        )
        assert parse_df_output(output) == (115000000 * 1024, 55000000 * 1024)

    def test_df_malformed(self) -> None:
        assert parse_df_output("") == (0, 0)

    def test_stat(self) -> None:
        size, mtime = parse_stat_output("2048 1705314600\n")
        assert size == 2048
        assert mtime == datetime.fromtimestamp(1705314600)

    def test_stat_malformed(self) -> None:
        assert parse_stat_output("stat: missing") is None

    def test_version(self) -> None:
        output = "Android Debug Bridge version 1.0.41\nVersion 34.0.5-10900879\n"
        assert parse_adb_version(output) == "Android Debug Bridge version 1.0.41"


class TestIsDeviceMissing:
    """Tests for is_device_missing."""

    def test_missing_messages(self) -> None:
        assert is_device_missing("error: device 'ABC' not found")
        assert is_device_missing("adb: no devices/emulators found")
        assert is_device_missing("error: device offline")
        assert is_device_missing("error: device unauthorized.")

    def test_other_errors(self) -> None:
        assert not is_device_missing("remote object '/sdcard/x' does not exist")
