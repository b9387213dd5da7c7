"""
Upload module: committing staged content and the per-write writer.
"""

from bucketmesh.upload.committer import UploadCommitter
from bucketmesh.upload.writer import ObjectWriter

__all__ = [
    "UploadCommitter",
    "ObjectWriter",
]
