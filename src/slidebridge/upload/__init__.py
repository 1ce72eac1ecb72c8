"""Resumable chunked upload of large answers.

Usage:
    from slidebridge.upload import ChunkedUploader

    uploader = ChunkedUploader(client, client.resumable_endpoint)
    session = uploader.run("Tumor area", payload)
"""

from slidebridge.upload.protocol import ChunkedUploader, UploadGrant, UploadTransport
from slidebridge.upload.session import CancellationToken, UploadSession, UploadState
from slidebridge.upload.tus import ResumableEndpoint, TusEndpoint, TusError

__all__ = [
    "CancellationToken",
    "ChunkedUploader",
    "ResumableEndpoint",
    "TusEndpoint",
    "TusError",
    "UploadGrant",
    "UploadSession",
    "UploadState",
    "UploadTransport",
]
