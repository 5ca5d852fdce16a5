"""
Tests for adbsync.sync.diff module.
"""

from datetime import timedelta

from adbsync.core.models import DiffType, FileCategory, FileEntry
from adbsync.sync.diff import DiffEngine

from conftest import BASE_TIME, make_entry


def local(relative_path: str, **kwargs) -> FileEntry:
    return make_entry(relative_path, root="/home/user/phone", **kwargs)


class TestDiffEngineCompare:
    """Tests for DiffEngine.compare."""

    def test_four_way_classification(self) -> None:
        remote = [
            make_entry("/a.jpg", size=100),
            make_entry("/b.jpg", size=200),
            make_entry("/c.jpg", size=300),
        ]
        local_entries = [
            local("/b.jpg", size=200),
            local("/c.jpg", size=999),
            local("/d.jpg", size=50),
        ]

        result = DiffEngine().compare(remote, local_entries)

        assert [e.relative_path for e in result.new] == ["/a.jpg"]
        assert [e.relative_path for e in result.modified] == ["/c.jpg"]
        assert [e.relative_path for e in result.deleted] == ["/d.jpg"]
        assert [e.relative_path for e in result.unchanged] == ["/b.jpg"]

    def test_modified_and_unchanged_carry_remote_entry(self) -> None:
        remote = [make_entry("/a.txt", size=1), make_entry("/b.txt")]
        local_entries = [local("/a.txt", size=2), local("/b.txt")]

        result = DiffEngine().compare(remote, local_entries)

        assert result.modified[0].absolute_path == "/sdcard/a.txt"
        assert result.unchanged[0].absolute_path == "/sdcard/b.txt"

    def test_partition_is_complete_and_disjoint(self) -> None:
        remote = [make_entry(f"/r{i}.txt", size=i) for i in range(5)] + [make_entry("/both.txt")]
        local_entries = [local(f"/l{i}.txt") for i in range(3)] + [local("/both.txt")]

        result = DiffEngine().compare(remote, local_entries)

        keys = [e.relative_path for t in DiffType for e in result.by_type(t)]
        assert len(keys) == len(set(keys))
        assert set(keys) == {e.relative_path for e in remote} | {e.relative_path for e in local_entries}

    def test_deterministic_order(self) -> None:
        remote = [make_entry("/z.txt"), make_entry("/a.txt"), make_entry("/m/n.txt")]
        engine = DiffEngine()

        first = engine.compare(remote, [])
        second = engine.compare(list(reversed(remote)), [])

        assert [e.relative_path for e in first.new] == ["/a.txt", "/m/n.txt", "/z.txt"]
        assert first.new == second.new

    def test_time_within_tolerance_is_unchanged(self) -> None:
        remote = [make_entry("/a.txt", modified_at=BASE_TIME + timedelta(seconds=2))]
        result = DiffEngine().compare(remote, [local("/a.txt")])
        assert len(result.unchanged) == 1

    def test_time_beyond_tolerance_is_modified(self) -> None:
        remote = [make_entry("/a.txt", modified_at=BASE_TIME - timedelta(seconds=3))]
        result = DiffEngine().compare(remote, [local("/a.txt")])
        assert len(result.modified) == 1

    def test_hash_difference_wins(self) -> None:
        remote = [make_entry("/a.txt", content_hash="aaa")]
        local_entries = [local("/a.txt", content_hash="bbb")]

        engine = DiffEngine()
        assert len(engine.compare(remote, local_entries, use_hash=True).modified) == 1
        assert len(engine.compare(remote, local_entries, use_hash=False).unchanged) == 1

    def test_equal_hash_authoritative(self) -> None:
        remote = [make_entry("/a.txt", size=10, content_hash="same")]
        local_entries = [local("/a.txt", size=11, content_hash="same")]

        result = DiffEngine(hash_authoritative=True).compare(remote, local_entries, use_hash=True)
        assert len(result.unchanged) == 1

    def test_equal_hash_not_authoritative(self) -> None:
        remote = [make_entry("/a.txt", size=10, content_hash="same")]
        local_entries = [local("/a.txt", size=11, content_hash="same")]

        result = DiffEngine(hash_authoritative=False).compare(remote, local_entries, use_hash=True)
        assert len(result.modified) == 1

    def test_missing_hash_falls_back_to_metadata(self) -> None:
        remote = [make_entry("/a.txt", size=10)]
        local_entries = [local("/a.txt", size=10, content_hash="abc")]

        result = DiffEngine().compare(remote, local_entries, use_hash=True)
        assert len(result.unchanged) == 1

    def test_duplicate_keys_last_wins(self) -> None:
        remote = [make_entry("/a.txt", size=1), make_entry("/a.txt", size=2)]
        result = DiffEngine().compare(remote, [])
        assert [e.size for e in result.new] == [2]

    def test_empty_inputs(self) -> None:
        result = DiffEngine().compare([], [])
        assert result.total_count == 0


class TestDiffEngineFilter:
    """Tests for DiffEngine.filter."""

    def make_result(self):
        remote = [
            make_entry("/DCIM/photo.jpg"),
            make_entry("/Movies/clip.mp4", size=999),
            make_entry("/Docs/report.pdf"),
        ]
        local_entries = [local("/Movies/clip.mp4"), local("/Old/Photo.png")]
        return DiffEngine().compare(remote, local_entries)

    def test_empty_criteria_is_identity(self) -> None:
        result = self.make_result()
        assert DiffEngine().filter(result) == result

    def test_search_is_case_insensitive(self) -> None:
        filtered = DiffEngine().filter(self.make_result(), search_text="PHOTO")
        assert [e.relative_path for e in filtered.new] == ["/DCIM/photo.jpg"]
        assert [e.relative_path for e in filtered.deleted] == ["/Old/Photo.png"]
        assert filtered.modified == ()

    def test_file_types(self) -> None:
        filtered = DiffEngine().filter(self.make_result(), file_types={FileCategory.VIDEO})
        assert [e.relative_path for e in filtered.modified] == ["/Movies/clip.mp4"]
        assert filtered.new == ()

    def test_diff_types(self) -> None:
        filtered = DiffEngine().filter(self.make_result(), diff_types={DiffType.NEW})
        assert len(filtered.new) == 2
        assert filtered.modified == ()
        assert filtered.deleted == ()

    def test_criteria_combine(self) -> None:
        filtered = DiffEngine().filter(
            self.make_result(),
            search_text="docs",
            file_types={FileCategory.DOCUMENT},
            diff_types={DiffType.NEW, DiffType.DELETED},
        )
        assert [e.relative_path for e in filtered.new] == ["/Docs/report.pdf"]
        assert filtered.total_count == 1


class TestBuildTree:
    """Tests for DiffEngine.build_tree."""

    def test_creates_implicit_directories(self) -> None:
        tree = DiffEngine.build_tree([make_entry("/DCIM/Camera/a.jpg")])

        dcim = tree.children["DCIM"]
        camera = dcim.children["Camera"]
        leaf = camera.children["a.jpg"]

        assert dcim.is_directory and dcim.entry is None
        assert camera.path == "/DCIM/Camera"
        assert not leaf.is_directory
        assert leaf.entry is not None
        assert leaf.entry.relative_path == "/DCIM/Camera/a.jpg"

    def test_directory_entry_attaches_to_node(self) -> None:
        entries = [
            make_entry("/Music/song.mp3"),
            make_entry("/Music", is_directory=True, size=4096),
        ]
        tree = DiffEngine.build_tree(entries)

        music = tree.children["Music"]
        assert music.entry is not None
        assert music.entry.is_directory
        assert "song.mp3" in music.children

    def test_display_order(self) -> None:
        entries = [make_entry("/b.txt"), make_entry("/a.txt"), make_entry("/zdir/x.txt")]
        tree = DiffEngine.build_tree(entries)
        assert [node.path for node in tree.walk()] == ["/zdir", "/zdir/x.txt", "/a.txt", "/b.txt"]

    def test_empty(self) -> None:
        assert DiffEngine.build_tree([]).children == {}
