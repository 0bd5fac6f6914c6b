"""JSON collection files: round trips and refusal to overwrite unreadable data."""

import pytest

from rfpcloud.errors import StorageError
from rfpcloud.storage import JsonStorage


class TestJsonStorage:
    def test_new_collections_start_empty(self, storage):
        assert storage.all("vendors") == []
        assert storage.files["vendors"].read_text() == "[]"

    def test_existing_files_are_kept(self, tmp_path):
        first = JsonStorage(tmp_path / "data")
        first.insert("vendors", {"id": "v1", "name": "Acme"})
        assert JsonStorage(tmp_path / "data").get("vendors", "v1") == {"id": "v1", "name": "Acme"}

    def test_corrupt_collection_raises(self, storage):
        storage.files["vendors"].write_text("{not json")
        with pytest.raises(StorageError) as exc:
            storage.all("vendors")
        assert exc.value.status_code == 500
        assert "vendors.json" in exc.value.message

    def test_corrupt_collection_is_not_overwritten(self, storage):
        storage.insert("vendors", {"id": "v1", "name": "Acme"})
        broken = storage.files["vendors"].read_text()[:-3]
        storage.files["vendors"].write_text(broken)

        with pytest.raises(StorageError):
            storage.insert("vendors", {"id": "v2", "name": "Globex"})
        with pytest.raises(StorageError):
            storage.update("vendors", "v1", {"name": "Acme Corp"})

        assert storage.files["vendors"].read_text() == broken
