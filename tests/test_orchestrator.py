"""Tests for the FileLibrary facade and snapshot persistence."""
import json

import pytest

from filedrop import FileLibrary, NotFoundError, OrphanPolicy, RawItem, StoreError, UploadConfig
from filedrop.services.path_resolver import ROOT_LABEL
from filedrop.services.snapshot import JsonSnapshotBackend


def _raw(name, type_="image/png"):
    return RawItem(name=name, size=2048, type=type_)


@pytest.fixture
def config():
    return UploadConfig(step_delay=0)


class TestFolders:
    @pytest.mark.asyncio
    async def test_folder_operations(self, config):
        async with FileLibrary(config=config) as library:
            docs = await library.create_folder("Docs")
            reports = await library.create_folder("Reports", docs.id)
            await library.rename_folder(reports.id, "Q3")
            await library.toggle_expanded(docs.id)

            assert library.get_folder_path(reports.id) == "Docs / Q3"
            tree = library.get_folder_tree()
            assert tree[0].is_expanded is True
            assert tree[0].children[0].name == "Q3"

            await library.move_folder(reports.id, None)
            assert library.get_folder_path(reports.id) == "Q3"
            assert library.paths.describe(None) == ROOT_LABEL
            assert library.paths.describe("missing") == ROOT_LABEL


class TestOrphanPolicy:
    async def _library_with_items(self, config, policy):
        library = FileLibrary(config=config, orphan_policy=policy)
        await library.open()
        parent = await library.create_folder("Parent")
        child = await library.create_folder("Child", parent.id)
        await library.upload_batch([_raw("a.png")], parent.id)
        await library.upload_batch([_raw("b.png")], child.id)
        await library.upload_batch([_raw("c.png")])
        return library, parent

    @pytest.mark.asyncio
    async def test_detach(self, config):
        library, parent = await self._library_with_items(config, OrphanPolicy.DETACH)

        deleted = await library.delete_folder(parent.id)

        assert len(deleted) == 2
        items = library.list_items()
        assert len(items) == 3
        assert all(item.folder_id is None for item in items)

    @pytest.mark.asyncio
    async def test_cascade(self, config):
        library, parent = await self._library_with_items(config, OrphanPolicy.CASCADE)

        await library.delete_folder(parent.id)

        assert [item.name for item in library.list_items()] == ["c.png"]

    @pytest.mark.asyncio
    async def test_keep(self, config):
        library, parent = await self._library_with_items(config, OrphanPolicy.KEEP)

        await library.delete_folder(parent.id)

        assert len(library.list_items(folder_id=parent.id)) == 1
        assert library.folders.get_by_id(parent.id) is None


class TestUpload:
    @pytest.mark.asyncio
    async def test_unknown_folder_rejected_before_upload(self, config):
        async with FileLibrary(config=config) as library:
            with pytest.raises(NotFoundError):
                await library.upload_batch([_raw("a.png")], "missing")
            assert library.list_items() == []
            assert library.list_sessions() == []

    @pytest.mark.asyncio
    async def test_stats_and_listing(self, config):
        async with FileLibrary(config=config) as library:
            folder = await library.create_folder("Photos")
            await library.upload_batch([_raw("a.png"), _raw("b.png")], folder.id)

            stats = library.stats()
            assert stats.total_items == 2
            assert stats.total_size == 4096
            assert stats.today_uploads == 2
            assert len(library.list_items(folder_id=folder.id, status="completed")) == 2

            item = library.list_items()[0]
            await library.delete_item(item.id)
            assert library.stats().total_items == 1
            assert len(library.list_sessions()) == 1


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path, config):
        store_path = tmp_path / "library.json"

        async with FileLibrary(config=config, store_path=store_path) as library:
            docs = await library.create_folder("Docs")
            reports = await library.create_folder("Reports", docs.id)
            await library.toggle_expanded(docs.id)
            await library.upload_batch([_raw("a.png")], reports.id)
            tree_before = [node.to_dict() for node in library.get_folder_tree()]

        assert store_path.exists()

        async with FileLibrary(config=config, store_path=store_path) as library:
            assert [node.to_dict() for node in library.get_folder_tree()] == tree_before
            assert library.get_folder_path(reports.id) == "Docs / Reports"
            items = library.list_items(folder_id=reports.id)
            assert [item.name for item in items] == ["a.png"]
            assert library.list_sessions()[0].completed is True

    @pytest.mark.asyncio
    async def test_delete_is_persisted(self, tmp_path, config):
        store_path = tmp_path / "library.json"
        async with FileLibrary(config=config, store_path=store_path) as library:
            docs = await library.create_folder("Docs")
            await library.create_folder("Inner", docs.id)
            await library.delete_folder(docs.id)

        data = json.loads(store_path.read_text(encoding="utf-8"))
        assert data["folders"] == {}

    @pytest.mark.asyncio
    async def test_flush_only_when_dirty(self, tmp_path):
        backend = JsonSnapshotBackend(tmp_path / "nested" / "library.json")
        await backend.flush()
        assert not backend.path.exists()

        await backend.upsert("folders", [{"id": "a", "name": "A"}])
        assert backend.is_dirty is True
        await backend.flush()
        assert backend.is_dirty is False
        assert await backend.load("folders") == [{"id": "a", "name": "A"}]

    @pytest.mark.asyncio
    async def test_corrupt_snapshot(self, tmp_path):
        store_path = tmp_path / "library.json"
        store_path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StoreError):
            async with FileLibrary(store_path=store_path):
                pass
