"""Unit tests for attachment storage."""

import pytest

from classdesk.kernel.errors import ValidationError
from classdesk.kernel.storage.blob import LocalBlobStore, build_attachment_path


class TestAttachmentPath:
    def test_keeps_extension(self):
        assert build_attachment_path("CS101", "t1", "plot.final.png", now_ms=42) == "CS101/t1/42.png"

    def test_defaults_to_bin(self):
        assert build_attachment_path("CS101", "t1", "Makefile", now_ms=42) == "CS101/t1/42.bin"
        assert build_attachment_path("CS101", "t1", "trailing.", now_ms=42) == "CS101/t1/42.bin"


class TestLocalBlobStore:
    async def test_upload_writes_file_and_returns_url(self, tmp_path):
        blobs = LocalBlobStore(str(tmp_path), "http://files.test/attachments/")

        url = await blobs.upload("CS101/t1/42.txt", b"boom", "text/plain")

        assert url == "http://files.test/attachments/CS101/t1/42.txt"
        assert (tmp_path / "CS101" / "t1" / "42.txt").read_bytes() == b"boom"

    async def test_path_cannot_escape_root(self, tmp_path):
        blobs = LocalBlobStore(str(tmp_path / "root"), "http://files.test")

        with pytest.raises(ValidationError):
            await blobs.upload("../outside.txt", b"x")
