"""
Routing module: bucket → region resolution and per-region clients.
"""

from bucketmesh.routing.pool import RegionalClientPool
from bucketmesh.routing.resolver import RegionResolver
from bucketmesh.routing.router import RegionAwareRouter

__all__ = [
    "RegionalClientPool",
    "RegionResolver",
    "RegionAwareRouter",
]
