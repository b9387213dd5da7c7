"""
Staging module: interchangeable buffering strategies for object writes.

- MemoryStager: bounded bytearray, optional spill to disk
- DiskStager: uniquely named temporary file
- MultipartStager: streamed parts through a server-side session
"""

from bucketmesh.staging.base import ContentStager, StagedContent, StagerState
from bucketmesh.staging.disk import DiskStager
from bucketmesh.staging.memory import MemoryStager
from bucketmesh.staging.multipart import MultipartStager, PartCommitter
from bucketmesh.staging.factory import create_stager

__all__ = [
    "ContentStager",
    "StagedContent",
    "StagerState",
    "DiskStager",
    "MemoryStager",
    "MultipartStager",
    "PartCommitter",
    "create_stager",
]
