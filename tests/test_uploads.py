"""
Tests for upload and metadata storage.
"""

import json
import os
import re
import time
from io import BytesIO

import pytest

from lan_print_backend.errors import UploadRejectedError
from lan_print_backend.models import SourceInfo
from lan_print_backend.uploads import UploadStore


class TestSave:
    def test_saves_with_unique_name(self, upload_store):
        path = upload_store.save(BytesIO(b"hello"), "Notes.TXT", "text/plain")
        assert re.fullmatch(r"file-\d+-\d+\.txt", path.name)
        assert path.read_bytes() == b"hello"
        assert path.parent == upload_store.upload_root

    def test_rejects_unsupported_type(self, upload_store):
        with pytest.raises(UploadRejectedError, match="Unsupported file type"):
            upload_store.save(BytesIO(b"MZ"), "tool.exe", "application/x-msdownload")

    def test_rejects_oversized_upload_and_removes_partial(self, tmp_path):
        store = UploadStore(tmp_path / "small", max_upload_bytes=4)
        with pytest.raises(UploadRejectedError) as excinfo:
            store.save(BytesIO(b"0123456789"), "big.pdf", "application/pdf")
        assert excinfo.value.status_code == 413
        assert store.list_files() == []


class TestResolve:
    @pytest.mark.parametrize("name", ["../escape.pdf", "nested/file.pdf", ".metadata", ".hidden"])
    def test_rejects_names_outside_upload_dir(self, upload_store, name):
        with pytest.raises(UploadRejectedError):
            upload_store.resolve(name)

    def test_resolves_plain_name(self, upload_store):
        assert upload_store.resolve("file-1-2.pdf") == upload_store.upload_root / "file-1-2.pdf"


class TestListing:
    def test_lists_with_metadata_newest_first(self, upload_store):
        first = upload_store.save(BytesIO(b"one"), "first.pdf", "application/pdf")
        upload_store.store_metadata(first.name, "first.pdf", "application/pdf", SourceInfo(ip_address="10.0.0.2", user_agent="ua"))
        time.sleep(0.01)
        second = upload_store.save(BytesIO(b"second"), "second.png", "image/png")
        upload_store.store_metadata(second.name, "second.png", "image/png")

        files = upload_store.list_files()

        assert [info.filename for info in files] == [second.name, first.name]
        assert files[0].mimetype == "image/png"
        assert files[0].size == 6
        assert files[1].original_name == "first.pdf"
        assert files[1].source_info.ip_address == "10.0.0.2"

    def test_file_without_metadata_uses_its_own_name(self, upload_store):
        orphan = upload_store.upload_root / "dropped.pdf"
        orphan.write_bytes(b"%PDF")
        (info,) = upload_store.list_files()
        assert info.original_name == "dropped.pdf"
        assert info.source_info is None

    def test_sidecar_uses_camel_case_keys(self, upload_store):
        path = upload_store.save(BytesIO(b"x"), "a.pdf", "application/pdf")
        upload_store.store_metadata(path.name, "a.pdf", "application/pdf", SourceInfo(ip_address="10.0.0.3"))
        sidecar = json.loads((upload_store.metadata_root / f"{path.name}.json").read_text(encoding="utf-8"))
        assert sidecar["originalName"] == "a.pdf"
        assert "uploadTime" in sidecar
        assert sidecar["sourceInfo"]["ipAddress"] == "10.0.0.3"
        assert upload_store.get_metadata(path.name).original_name == "a.pdf"

    def test_corrupt_metadata_is_ignored(self, upload_store):
        path = upload_store.save(BytesIO(b"x"), "a.pdf", "application/pdf")
        (upload_store.metadata_root / f"{path.name}.json").write_text("{not json", encoding="utf-8")
        (info,) = upload_store.list_files()
        assert info.original_name == path.name


class TestDelete:
    def test_delete_removes_file_and_sidecar(self, upload_store):
        path = upload_store.save(BytesIO(b"x"), "a.pdf", "application/pdf")
        upload_store.store_metadata(path.name, "a.pdf", "application/pdf")

        assert upload_store.delete(path.name) is True
        assert not path.exists()
        assert not os.listdir(upload_store.metadata_root)

    def test_delete_missing(self, upload_store):
        assert upload_store.delete("nothing.pdf") is False
        assert upload_store.delete("../etc/passwd") is False
