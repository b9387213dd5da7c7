"""
Unit Tests: Upload Pipeline

Tests:
    - Round trip through every staging strategy
    - Retry of transient failures, surfacing of fatal ones
    - Recovery artifacts of failed disk-staged uploads
    - Multipart part failure and session cleanup
    - Writer lifecycle: context manager, abort, cancellation
"""

import asyncio
import os

import pytest

from bucketmesh.core.errors import ErrorCode, RequestError
from bucketmesh.core.types import StagingStrategy
from bucketmesh.staging import StagerState
from bucketmesh.tests.support import make_config, make_router, make_service


class TestRoundTrip:
    """Tests for uploads that succeed."""

    @pytest.mark.parametrize("strategy", list(StagingStrategy))
    def test_round_trip(self, tmp_path, strategy):
        """Test that bytes written through any strategy read back intact."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service, make_config(tmp_path, strategy=strategy))
            data = b"0123456789" * 3

            receipt = (await router.put_object(
                "photos", "report.csv", data, metadata={"owner": "ops"}
            )).unwrap()
            stored, info = (await router.get_object("photos", "report.csv")).unwrap()

            assert stored == data
            assert receipt.size_bytes == len(data)
            assert receipt.strategy is strategy
            assert receipt.etag == info.etag
            assert info.content_type == "text/csv"
            assert info.metadata == {"owner": "ops"}
            assert list(tmp_path.iterdir()) == []

        asyncio.run(scenario())

    def test_multipart_receipt_counts_parts(self):
        """Test that a multipart receipt reports its part count."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(
                service, make_config(strategy=StagingStrategy.MULTIPART, part_size=4)
            )

            receipt = (await router.put_object("photos", "big.bin", b"x" * 10)).unwrap()

            assert receipt.parts == 3
            assert receipt.etag.endswith("-3")
            assert service.open_sessions() == []

        asyncio.run(scenario())

    def test_explicit_content_type_wins(self):
        """Test that an explicit content type overrides the key's extension."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service)

            receipt = (await router.put_object(
                "photos", "cat.jpg", b"x", content_type="application/x-custom"
            )).unwrap()
            info = (await router.head_object("photos", "cat.jpg")).unwrap()

            assert receipt.content_type == "application/x-custom"
            assert info.content_type == "application/x-custom"

        asyncio.run(scenario())

    def test_spilled_upload_cleans_up(self, tmp_path):
        """Test that a memory upload spilled to disk deletes its file."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service, make_config(tmp_path, threshold=4, spill=True))

            receipt = (await router.put_object("photos", "k", b"0123456789")).unwrap()

            assert receipt.strategy is StagingStrategy.DISK
            assert service.object_data("photos", "k") == b"0123456789"
            assert list(tmp_path.iterdir()) == []

        asyncio.run(scenario())


class TestRetry:
    """Tests for commit retry behavior."""

    def test_transient_failures_are_retried(self):
        """Test that transient failures within budget still commit."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail("put_object", times=2)
            router, _ = make_router(service, make_config(max_attempts=3))

            receipt = (await router.put_object("photos", "k", b"data")).unwrap()

            assert receipt.attempts == 3
            assert router.metrics.upload_retries.get(strategy="memory") == 2
            assert router.metrics.uploads_committed.get(strategy="memory") == 1

        asyncio.run(scenario())

    def test_fatal_failure_is_not_retried(self):
        """Test that a permission error surfaces after one attempt."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail(
                "put_object",
                error=lambda: RequestError.permission_denied("put_object", "photos/k"),
            )
            router, _ = make_router(service)

            result = await router.put_object("photos", "k", b"data")

            assert result.error.code is ErrorCode.UPLOAD_REJECTED
            assert result.error.cause.code is ErrorCode.REQUEST_PERMISSION_DENIED
            assert service.count_calls("put_object") == 1

        asyncio.run(scenario())

    def test_invalid_metadata_never_reaches_service(self):
        """Test that header validation fails before any remote call."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service)

            result = await router.put_object("photos", "k", b"data", metadata={"bad key": "v"})

            assert result.error.code is ErrorCode.UPLOAD_REJECTED
            assert service.count_calls("put_object") == 0

        asyncio.run(scenario())

    def test_memory_exhaustion_has_no_artifact(self):
        """Test that a failed memory upload names no recovery file."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail("put_object")
            router, _ = make_router(service, make_config(max_attempts=2))

            result = await router.put_object("photos", "k", b"data")

            assert result.error.code is ErrorCode.UPLOAD_RETRY_EXHAUSTED
            assert result.error.recovery_path is None
            assert result.error.context["attempts"] == 2

        asyncio.run(scenario())

    def test_deadline_bounds_retries(self):
        """Test that the overall deadline stops an unbounded retry loop."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail("put_object")
            config = make_config(max_attempts=10_000, deadline_s=0.05, base_delay_ms=10)
            router, _ = make_router(service, config)

            result = await router.put_object("photos", "k", b"data")

            assert result.error.code is ErrorCode.UPLOAD_DEADLINE_EXCEEDED
            assert service.count_calls("put_object") < 10_000

        asyncio.run(scenario())


class TestSizeLimit:
    """Tests for the in-memory threshold."""

    def test_oversize_write_never_uploads(self):
        """Test that exceeding the threshold fails without a remote call."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service, make_config(threshold=8))

            result = await router.put_object("photos", "k", b"0123456789")

            assert result.error.code is ErrorCode.STAGING_SIZE_EXCEEDED
            assert service.count_calls("put_object") == 0
            assert service.keys("photos") == []

        asyncio.run(scenario())


class TestDiskRecovery:
    """Tests for the disk strategy's recovery artifact."""

    def test_failed_upload_keeps_file(self, tmp_path):
        """Test that the staged file survives and is named by the error."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail("put_object")
            router, _ = make_router(
                service, make_config(tmp_path, strategy=StagingStrategy.DISK, max_attempts=3)
            )
            data = b"precious bytes"

            result = await router.put_object("photos", "k", data)

            error = result.error
            assert error.code is ErrorCode.UPLOAD_RETRY_EXHAUSTED
            assert error.recovery_path is not None
            assert os.path.dirname(error.recovery_path) == str(tmp_path)
            with open(error.recovery_path, "rb") as f:
                assert f.read() == data
            assert service.count_calls("put_object") == 3

        asyncio.run(scenario())

    def test_rejected_upload_keeps_file(self, tmp_path):
        """Test that a fatal rejection also preserves the staged file."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail(
                "put_object",
                error=lambda: RequestError.permission_denied("put_object", "photos/k"),
            )
            router, _ = make_router(service, make_config(tmp_path, strategy=StagingStrategy.DISK))

            result = await router.put_object("photos", "k", b"data")

            assert result.error.code is ErrorCode.UPLOAD_REJECTED
            assert os.path.exists(result.error.recovery_path)

        asyncio.run(scenario())

    def test_successful_upload_deletes_file(self, tmp_path):
        """Test that the staged file is removed after a commit."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service, make_config(tmp_path, strategy=StagingStrategy.DISK))

            writer = router.open_writer("photos", "k")
            await writer.write(b"data")
            path = writer.stager.path
            assert os.path.exists(path)

            (await writer.close()).unwrap()

            assert not os.path.exists(path)

        asyncio.run(scenario())


class TestMultipartFailure:
    """Tests for multipart sessions that cannot complete."""

    def test_failed_part_aborts_session(self):
        """Test that a part exhausting its budget aborts the whole session."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            rule = service.fail("upload_part", part_number=2)
            router, _ = make_router(
                service,
                make_config(strategy=StagingStrategy.MULTIPART, part_size=4, part_max_attempts=2),
            )

            result = await router.put_object("photos", "big.bin", b"aaaabbbbcccc")

            assert result.error.code is ErrorCode.UPLOAD_PART_FAILED
            assert result.error.context["part_number"] == 2
            assert rule.hits == 2
            assert service.open_sessions() == []
            assert len(service.aborted_upload_ids()) == 1
            assert service.object_data("photos", "big.bin") is None
            assert service.count_calls("complete_multipart_upload") == 0

        asyncio.run(scenario())

    def test_failed_completion_aborts_session(self):
        """Test that a session is aborted when completion keeps failing."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail("complete_multipart_upload")
            router, _ = make_router(
                service, make_config(strategy=StagingStrategy.MULTIPART, part_size=4)
            )

            result = await router.put_object("photos", "big.bin", b"aaaabbbb")

            assert result.error.code is ErrorCode.UPLOAD_RETRY_EXHAUSTED
            assert result.error.recovery_path is None
            assert service.open_sessions() == []
            assert len(service.aborted_upload_ids()) == 1

        asyncio.run(scenario())

    def test_transient_part_failure_is_retried(self):
        """Test that one flaky part does not fail the upload."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail("upload_part", part_number=1, times=1)
            router, _ = make_router(
                service, make_config(strategy=StagingStrategy.MULTIPART, part_size=4)
            )

            receipt = (await router.put_object("photos", "big.bin", b"aaaabbbb")).unwrap()

            assert receipt.parts == 2
            assert service.object_data("photos", "big.bin") == b"aaaabbbb"

        asyncio.run(scenario())


class TestObjectWriter:
    """Tests for the writer lifecycle."""

    def test_context_manager_commits(self):
        """Test that a clean exit commits and records the receipt."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service)

            async with router.open_writer("photos", "notes.txt") as writer:
                await writer.write(b"line 1\n")
                await writer.write(b"line 2\n")

            receipt = writer.result.unwrap()
            assert receipt.size_bytes == 14
            assert writer.bytes_written == 14
            assert service.object_data("photos", "notes.txt") == b"line 1\nline 2\n"

        asyncio.run(scenario())

    def test_exception_aborts(self, tmp_path):
        """Test that an exception inside the block discards staged bytes."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service, make_config(tmp_path, strategy=StagingStrategy.DISK))
            writer = router.open_writer("photos", "k")

            with pytest.raises(RuntimeError):
                async with writer:
                    await writer.write(b"partial")
                    raise RuntimeError("boom")

            assert writer.result.error.code is ErrorCode.UPLOAD_ABORTED
            assert list(tmp_path.iterdir()) == []
            assert service.count_calls("put_object") == 0

        asyncio.run(scenario())

    def test_close_is_idempotent(self):
        """Test that closing twice returns the first outcome."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service)
            writer = router.open_writer("photos", "k")
            await writer.write(b"x")

            first = await writer.close()
            second = await writer.close()

            assert first is second
            assert service.count_calls("put_object") == 1
            assert (await writer.write(b"y")).error.code is ErrorCode.STAGING_CLOSED

        asyncio.run(scenario())

    def test_abort_after_close_is_noop(self):
        """Test that abort does not overwrite a committed result."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service)
            writer = router.open_writer("photos", "k")
            await writer.write(b"x")
            await writer.close()

            await writer.abort()

            assert writer.result.is_ok()

        asyncio.run(scenario())

    def test_cancellation_aborts_multipart_session(self):
        """Test that cancelling a writing task leaves no open session."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(
                service, make_config(strategy=StagingStrategy.MULTIPART, part_size=4)
            )
            writer = router.open_writer("photos", "big.bin")
            started = asyncio.Event()

            async def produce():
                async with writer:
                    await writer.write(b"aaaabbbb")
                    started.set()
                    await asyncio.sleep(10)

            task = asyncio.ensure_future(produce())
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            assert writer.result.error.code is ErrorCode.UPLOAD_ABORTED
            assert service.open_sessions() == []
            assert len(service.aborted_upload_ids()) == 1

        asyncio.run(scenario())

    def test_cancellation_while_closing_aborts_session(self):
        """Test that cancelling while close() drains parts aborts the upload."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(
                service,
                make_config(strategy=StagingStrategy.MULTIPART, part_size=4),
                latency_s=0.05,
            )
            writer = router.open_writer("photos", "big.bin")
            written = asyncio.Event()

            async def produce():
                async with writer:
                    await writer.write(b"aaaabbbb")
                    written.set()

            task = asyncio.ensure_future(produce())
            await written.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            assert writer.result.error.code is ErrorCode.UPLOAD_ABORTED
            assert writer.stager.state is StagerState.ABORTED
            assert service.open_sessions() == []
            assert len(service.aborted_upload_ids()) == 1
            assert service.keys("photos") == []

        asyncio.run(scenario())


class TestPutObjectCancellation:
    """Tests for cancelling the one-shot upload helper."""

    def test_cancelled_put_object_aborts_session(self):
        """Test that cancelling put_object mid-stream leaves no open session."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(
                service,
                make_config(strategy=StagingStrategy.MULTIPART, part_size=4, inflight=1),
                latency_s=0.01,
            )

            task = asyncio.ensure_future(router.put_object("photos", "big.bin", b"a" * 40))
            while not service.open_sessions():
                await asyncio.sleep(0.005)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            assert service.open_sessions() == []
            assert len(service.aborted_upload_ids()) == 1
            assert service.keys("photos") == []

        asyncio.run(scenario())
