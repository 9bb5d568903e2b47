"""Tests for intake/ingestion/walker.py."""

import zipfile

import pytest

from intake.ingestion.errors import ArchiveOpenError, RejectionReason
from intake.ingestion.walker import ArchiveFailure, FolderGroup, group_entries, walk


def _groups(items):
    return [item for item in items if isinstance(item, FolderGroup)]


@pytest.mark.unit
class TestGroupEntries:
    """Tests for grouping entry names by folder."""

    def test_principal_and_originals_buckets(self):
        groups = group_entries(
            [
                "a/data.json",
                "a/report.docx",
                "a/Source/1-report.pdf",
                "a/1-report.pdf",
            ]
        )

        assert groups["a"] == (
            ["a/1-report.pdf", "a/data.json", "a/report.docx"],
            ["a/Source/1-report.pdf"],
        )
        # The Source folder gets its own group too, without originals
        assert groups["a/Source"] == (["a/Source/1-report.pdf"], [])

    def test_root_level_entries(self):
        groups = group_entries(["data.json", "Source/1-x.pdf"])
        assert groups[""] == (["data.json"], ["Source/1-x.pdf"])

    def test_folders_are_sorted(self):
        groups = group_entries(["z/1.pdf", "b/1.pdf", "m/1.pdf"])
        assert list(groups) == ["b", "m", "z"]

    def test_originals_only_from_direct_source_subfolder(self):
        groups = group_entries(["a/x.pdf", "a/Source/deep/1-x.pdf"])
        assert groups["a"] == (["a/x.pdf"], [])


@pytest.mark.unit
class TestWalk:
    """Tests for the archive walk."""

    def test_yields_one_group_per_folder(self, make_zip):
        data = make_zip({"a/1.pdf": b"1", "b/2.pdf": b"2", "b/Source/2.pdf": b"2"})

        groups = _groups(walk(data))

        assert [g.folder for g in groups] == ["a", "b", "b/Source"]
        assert all(g.archive == "" for g in groups)

    def test_group_reads_entry_bytes(self, make_zip):
        data = make_zip({"a/1.pdf": b"payload"})

        read = [item.read("a/1.pdf") for item in walk(data) if isinstance(item, FolderGroup)]

        assert read == [b"payload"]

    def test_archive_is_closed_once_walked(self, make_zip):
        data = make_zip({"a/1.pdf": b"1", "b/2.pdf": b"2"})

        groups = _groups(walk(data))

        assert all(g.zip_file.fp is None for g in groups)
        with pytest.raises(ValueError):
            groups[0].read("a/1.pdf")

    def test_archive_is_closed_when_walk_stops_early(self, make_zip):
        data = make_zip({"a/1.pdf": b"1", "b/2.pdf": b"2"})

        items = walk(data)
        group = next(items)
        items.close()

        assert group.folder == "a"
        assert group.zip_file.fp is None

    def test_skips_directories_and_macos_metadata(self, make_zip):
        data = make_zip({"a/1.pdf": b"1", "__MACOSX/a/._1.pdf": b"junk", "a/.DS_Store": b"junk"})

        groups = _groups(walk(data))

        assert [g.folder for g in groups] == ["a"]
        assert groups[0].principal == ["a/1.pdf"]

    def test_explicit_directory_entries_are_ignored(self, tmp_path):
        path = tmp_path / "dirs.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("a/", b"")
            zf.writestr("a/1.pdf", b"1")

        groups = _groups(walk(path.read_bytes()))

        assert [g.principal for g in groups] == [["a/1.pdf"]]

    def test_backslash_names_are_normalized(self, make_zip):
        data = make_zip({"a\\Source\\1.pdf": b"1", "a\\1.pdf": b"1"})

        groups = {g.folder: g for g in _groups(walk(data))}

        assert groups["a"].originals == ["a/Source/1.pdf"]

    def test_nested_archive_is_walked_after_outer(self, make_zip):
        inner = make_zip({"inner/1.pdf": b"i"})
        outer = make_zip({"outer/1.pdf": b"o", "outer/Source/inner.zip": inner})

        groups = _groups(walk(outer))

        assert [(g.archive, g.folder) for g in groups] == [
            ("", "outer"),
            ("", "outer/Source"),
            ("outer/Source/inner.zip", "inner"),
        ]

    def test_nested_archive_labels_chain(self, make_zip):
        level2 = make_zip({"deep/1.pdf": b"d"})
        level1 = make_zip({"mid/level2.zip": level2})
        outer = make_zip({"top/level1.zip": level1})

        groups = _groups(walk(outer))

        assert groups[-1].archive == "top/level1.zip!/mid/level2.zip"
        assert groups[-1].folder == "deep"

    def test_corrupt_nested_archive_is_reported_and_walk_continues(self, make_zip):
        outer = make_zip({"a/broken.zip": b"not a zip", "b/1.pdf": b"1"})

        items = list(walk(outer))

        failures = [item for item in items if isinstance(item, ArchiveFailure)]
        assert len(failures) == 1
        assert failures[0].archive == "a/broken.zip"
        assert failures[0].reason == RejectionReason.UNREADABLE_ARCHIVE
        assert [g.folder for g in _groups(items)] == ["a", "b"]

    def test_depth_limit(self, make_zip):
        inner = make_zip({"x/1.pdf": b"1"})
        outer = make_zip({"a/inner.zip": inner})

        items = list(walk(outer, max_depth=0))

        failures = [item for item in items if isinstance(item, ArchiveFailure)]
        assert [f.reason for f in failures] == [RejectionReason.ARCHIVE_TOO_DEEP]
        assert [g.folder for g in _groups(items)] == ["a"]

    def test_top_level_garbage_is_fatal(self):
        with pytest.raises(ArchiveOpenError):
            list(walk(b"definitely not a zip"))

    def test_empty_buffer_is_fatal(self):
        with pytest.raises(ArchiveOpenError):
            list(walk(b""))

    def test_same_layout_walks_in_same_order(self, make_zip):
        entries = {f"folder{i}/1.pdf": b"x" for i in (3, 1, 2)}

        first = [g.folder for g in _groups(walk(make_zip(entries)))]
        second = [g.folder for g in _groups(walk(make_zip(dict(reversed(list(entries.items()))))))]

        assert first == second == ["folder1", "folder2", "folder3"]
