from pathlib import Path

import pytest
from ordering.errors import ExternalDependencyError
from ordering.storage import get_image_storage, reset_image_storage, set_image_storage
from ordering.storage.fake_adapter import InMemoryImageStorage
from ordering.storage.local_adapter import LocalImageStorage


class TestInMemoryImageStorage:
    def test_save_returns_reference(self):
        storage = InMemoryImageStorage()
        reference = storage.save(b"jpeg-bytes", "proof.jpg", "image/jpeg")

        assert reference.startswith("memory://delivery-proofs/")
        assert reference.endswith("-proof.jpg")
        assert storage.objects[reference] == b"jpeg-bytes"

    def test_references_are_unique(self):
        storage = InMemoryImageStorage()
        assert storage.save(b"a", "proof.jpg", "image/jpeg") != storage.save(b"a", "proof.jpg", "image/jpeg")

    def test_unavailable(self):
        storage = InMemoryImageStorage()
        storage.configure(unavailable=True)
        with pytest.raises(ExternalDependencyError):
            storage.save(b"a", "proof.jpg", "image/jpeg")

    def test_delete(self):
        storage = InMemoryImageStorage()
        reference = storage.save(b"a", "proof.jpg", "image/jpeg")

        storage.delete(reference)
        storage.delete(reference)

        assert storage.objects == {}


class TestLocalImageStorage:
    def test_writes_file(self, tmp_path):
        storage = LocalImageStorage(tmp_path)
        reference = storage.save(b"png-bytes", "../../proof.png", "image/png")

        stored = list((tmp_path / "delivery-proofs").iterdir())
        assert len(stored) == 1
        assert stored[0].read_bytes() == b"png-bytes"
        assert stored[0].name.endswith("-proof.png")
        assert reference == stored[0].as_uri()

    def test_delete_removes_file(self, tmp_path):
        storage = LocalImageStorage(tmp_path)
        reference = storage.save(b"png-bytes", "proof.png", "image/png")

        storage.delete(reference)

        assert list((tmp_path / "delivery-proofs").iterdir()) == []

    def test_delete_ignores_files_outside_root(self, tmp_path):
        outside = tmp_path / "keep.png"
        outside.write_bytes(b"keep")
        storage = LocalImageStorage(tmp_path / "images")

        storage.delete(outside.as_uri())

        assert outside.read_bytes() == b"keep"

    def test_unwritable_root(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        storage = LocalImageStorage(Path(blocker))
        with pytest.raises(ExternalDependencyError):
            storage.save(b"a", "proof.jpg", "image/jpeg")


class TestImageStorageFactory:
    def test_memory_by_default(self, monkeypatch):
        monkeypatch.delenv("IMAGE_STORAGE", raising=False)
        reset_image_storage()
        assert isinstance(get_image_storage(), InMemoryImageStorage)

    def test_local(self, monkeypatch, tmp_path):
        monkeypatch.setenv("IMAGE_STORAGE", "local")
        monkeypatch.setenv("IMAGE_STORAGE_ROOT", str(tmp_path))
        reset_image_storage()
        storage = get_image_storage()
        assert isinstance(storage, LocalImageStorage)
        assert storage.root == tmp_path

    def test_override(self):
        custom = InMemoryImageStorage()
        set_image_storage(custom)
        assert get_image_storage() is custom

    def test_unknown_adapter(self, monkeypatch):
        monkeypatch.setenv("IMAGE_STORAGE", "floppy")
        reset_image_storage()
        with pytest.raises(ValueError):
            get_image_storage()
