"""Tests for dataset import pairing and zip export."""

import logging
import zipfile
from datetime import date

import pytest

from captag.dataset import (
    caption_name,
    collect_files,
    default_archive_name,
    export_archive,
    import_paths,
)
from captag.engine import EngineState
from captag.errors import MissingInputError
from tests.conftest import MemoryStore


@pytest.fixture
def folder(tmp_path):
    d = tmp_path / "data"
    d.mkdir()
    (d / "one.png").write_bytes(b"1")
    (d / "one.txt").write_text("  cat, dog \n")
    (d / "two.JPG").write_bytes(b"2")
    (d / "notes.md").write_text("ignore me")
    (d / ".hidden.png").write_bytes(b"h")
    (d / "sub").mkdir()
    (d / "sub" / "three.png").write_bytes(b"3")
    return d


class TestImport:

    def test_caption_name(self):
        assert caption_name("photo.final.jpeg") == "photo.final.txt"

    def test_collect_pairs_by_stem(self, folder):
        collected = collect_files([folder])
        assert [p.name for p in collected.images] == ["one.png", "two.JPG"]
        assert collected.captions == {"one": "cat, dog"}
        assert collected.caption_for(folder / "two.JPG") == ""

    def test_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            collect_files([tmp_path / "nope"])

    def test_import_adds_items_and_refreshes(self, folder):
        state = EngineState(MemoryStore())
        summary = import_paths(state, [folder])
        assert (summary.added, summary.captioned) == (2, 1)
        assert state.store.captions() == ["cat, dog", ""]
        assert state.index == {"cat": 1, "dog": 1}

    def test_import_explicit_files(self, folder):
        state = EngineState(MemoryStore())
        import_paths(state, [folder / "one.png", folder / "one.txt"])
        assert state.store.captions() == ["cat, dog"]

    def test_undecodable_caption_is_skipped(self, tmp_path):
        (tmp_path / "a.png").write_bytes(b"a")
        (tmp_path / "a.txt").write_bytes(b"caf\xe9, cat")
        (tmp_path / "b.png").write_bytes(b"b")
        (tmp_path / "b.txt").write_text("dog")
        state = EngineState(MemoryStore())
        summary = import_paths(state, [tmp_path])
        assert summary.added == 2
        assert summary.skipped == ["a.txt"]
        assert state.store.captions() == ["", "dog"]

    def test_import_without_images(self, tmp_path):
        (tmp_path / "a.txt").write_text("cat")
        with pytest.raises(MissingInputError):
            import_paths(EngineState(MemoryStore()), [tmp_path])


class TestExport:

    def test_default_archive_name(self):
        assert default_archive_name(date(2024, 3, 9)) == "captioned_dataset_2024-03-09.zip"

    def test_export_writes_images_and_nonblank_captions(self, tmp_path):
        store = MemoryStore()
        store.add("a.png", b"A", caption="cat, dog")
        store.add("b.png", b"B", caption="  ")
        path = export_archive(store, tmp_path / "out.zip")
        with zipfile.ZipFile(path) as zf:
            assert sorted(zf.namelist()) == ["a.png", "a.txt", "b.png"]
            assert zf.read("a.txt").decode() == "cat, dog"
            assert zf.read("b.png") == b"B"

    def test_duplicate_names_get_suffix(self, tmp_path):
        store = MemoryStore()
        store.add("a.png", b"1", caption="first")
        store.add("a.png", b"2", caption="second")
        store.add("a.jpg", b"3", caption="third")
        path = export_archive(store, tmp_path / "out.zip")
        with zipfile.ZipFile(path) as zf:
            assert zf.read("a_1.png") == b"2"
            assert zf.read("a_1.txt").decode() == "second"
            assert zf.read("a_2.jpg") == b"3"
            assert zf.read("a_2.txt").decode() == "third"

    def test_directory_destination(self, tmp_path):
        store = MemoryStore(["cat"])
        path = export_archive(store, tmp_path)
        assert path.parent == tmp_path
        assert path.name.startswith("captioned_dataset_")

    def test_empty_collection(self, tmp_path):
        with pytest.raises(MissingInputError):
            export_archive(MemoryStore(), tmp_path / "out.zip")

    def test_unreadable_item_is_skipped(self, tmp_path, caplog):
        caplog.set_level(logging.INFO, logger="captag.dataset")
        store = MemoryStore(["cat", "dog"])
        del store._data["item0"]
        path = export_archive(store, tmp_path / "out.zip")
        with zipfile.ZipFile(path) as zf:
            assert sorted(zf.namelist()) == ["img1.png", "img1.txt"]
        assert "Exported 1 of 2 images" in caplog.text
