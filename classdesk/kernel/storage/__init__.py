"""
Blob storage for message attachments.
"""

from classdesk.kernel.storage.blob import BlobStore, LocalBlobStore, MemoryBlobStore, build_attachment_path

__all__ = ["BlobStore", "LocalBlobStore", "MemoryBlobStore", "build_attachment_path"]
