"""
bucketmesh CLI Entrypoint

Commands:
    bucketmesh region BUCKET             Print the region hosting a bucket
    bucketmesh put BUCKET KEY FILE       Upload a file
    bucketmesh get BUCKET KEY [OUT]      Download an object (stdout if no OUT)
    bucketmesh ls BUCKET [--prefix P]    List objects
    bucketmesh rm BUCKET KEY             Delete an object

Global options:
    --memory                 Use the in-memory simulated service
    --memory-bucket B=R      Create bucket B in region R (with --memory)
    --log-level LEVEL        DEBUG, INFO, WARNING, ERROR
    --json-logs              JSON log lines on stderr
    --metrics                Print Prometheus metrics after the command

Exit code 0 on success, 1 on any error.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from bucketmesh import __version__
from bucketmesh.core.config import BucketMeshConfig
from bucketmesh.core.errors import BucketMeshError
from bucketmesh.core.types import StagingStrategy
from bucketmesh.observability.logging import LogLevel, setup_logging
from bucketmesh.routing.router import RegionAwareRouter
from bucketmesh.storage.backends import InMemoryClientFactory, InMemoryObjectService

READ_CHUNK_BYTES = 1024 * 1024


def _pair(item: str) -> Tuple[str, str]:
    name, sep, value = item.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {item!r}")
    return name, value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bucketmesh",
        description="Region-aware object storage client",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Use the in-memory simulated service instead of S3",
    )
    parser.add_argument(
        "--memory-bucket",
        action="append",
        default=[],
        type=_pair,
        metavar="BUCKET=REGION",
        help="Create a bucket in the simulated service (repeatable)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: BUCKETMESH_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Print metrics in Prometheus text format when done",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    region_parser = subparsers.add_parser("region", help="Show the region of a bucket")
    region_parser.add_argument("bucket")

    put_parser = subparsers.add_parser("put", help="Upload a file")
    put_parser.add_argument("bucket")
    put_parser.add_argument("key")
    put_parser.add_argument("file", type=Path)
    put_parser.add_argument(
        "--strategy",
        choices=[s.value for s in StagingStrategy],
        default=None,
        help="Staging strategy (default: BUCKETMESH_STAGING_STRATEGY or memory)",
    )
    put_parser.add_argument("--content-type", default=None)
    put_parser.add_argument(
        "--meta",
        action="append",
        default=[],
        type=_pair,
        metavar="KEY=VALUE",
        help="User metadata entry (repeatable)",
    )

    get_parser = subparsers.add_parser("get", help="Download an object")
    get_parser.add_argument("bucket")
    get_parser.add_argument("key")
    get_parser.add_argument("out", nargs="?", type=Path, default=None)

    ls_parser = subparsers.add_parser("ls", help="List objects")
    ls_parser.add_argument("bucket")
    ls_parser.add_argument("--prefix", default=None)

    rm_parser = subparsers.add_parser("rm", help="Delete an object")
    rm_parser.add_argument("bucket")
    rm_parser.add_argument("key")

    return parser


def _report(error: BucketMeshError) -> int:
    print(f"error: {error}", file=sys.stderr)
    if error.recovery_path:
        print(f"staged bytes preserved at: {error.recovery_path}", file=sys.stderr)
    return 1


async def _upload(router: RegionAwareRouter, args: argparse.Namespace) -> int:
    strategy = StagingStrategy(args.strategy) if args.strategy else None
    writer = router.open_writer(
        args.bucket,
        args.key,
        content_type=args.content_type,
        metadata=dict(args.meta),
        strategy=strategy,
    )
    try:
        async with writer:
            with args.file.open("rb") as source:
                while chunk := source.read(READ_CHUNK_BYTES):
                    written = await writer.write(chunk)
                    if written.is_err():
                        await writer.abort(written.error.message)
                        return _report(written.error)
    except OSError as e:
        print(f"error: cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    result = writer.result
    if result.is_err():
        return _report(result.error)
    receipt = result.value
    print(
        f"uploaded {receipt.bucket}/{receipt.key} "
        f"({receipt.size_bytes} bytes, {receipt.strategy.value}, etag {receipt.etag})"
    )
    return 0


async def _dispatch(router: RegionAwareRouter, args: argparse.Namespace) -> int:
    if args.command == "region":
        result = await router.resolve_region(args.bucket)
        if result.is_err():
            return _report(result.error)
        print(result.value)
        return 0

    if args.command == "put":
        return await _upload(router, args)

    if args.command == "get":
        result = await router.get_object(args.bucket, args.key)
        if result.is_err():
            return _report(result.error)
        data, _ = result.value
        if args.out is None:
            sys.stdout.buffer.write(data)
            sys.stdout.buffer.flush()
        else:
            args.out.write_bytes(data)
        return 0

    if args.command == "ls":
        try:
            async for obj in router.iter_objects(args.bucket, prefix=args.prefix):
                print(f"{obj.size_bytes:>12}  {obj.key}")
        except BucketMeshError as e:
            return _report(e)
        return 0

    if args.command == "rm":
        result = await router.delete_object(args.bucket, args.key)
        if result.is_err():
            return _report(result.error)
        return 0

    return 1


async def run(args: argparse.Namespace) -> int:
    loaded = BucketMeshConfig.from_env()
    if loaded.is_err():
        return _report(loaded.error)
    config = loaded.value

    level = LogLevel.parse(args.log_level or config.observability.log_level)
    setup_logging(level, json_output=args.json_logs or config.observability.log_json)

    factory = None
    if args.memory:
        service = InMemoryObjectService()
        for bucket, region in args.memory_bucket:
            service.create_bucket(bucket, region)
        factory = InMemoryClientFactory(service)

    async with RegionAwareRouter(config, factory) as router:
        code = await _dispatch(router, args)
        if args.metrics:
            sys.stdout.write(router.metrics.export_text())
        return code


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
