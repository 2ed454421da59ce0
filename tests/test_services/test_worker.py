"""Tests for the worker cycle."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from orchestrator.core.datetime_utils import utc_now
from orchestrator.models.job import Job, JobStatus
from orchestrator.services.http_dispatcher import IDEMPOTENCY_HEADER
from orchestrator.services.worker import SYNTHETIC_FAILURE_STATUS, Worker

pytestmark = pytest.mark.asyncio


class TestRunOnce:
    """Tests for Worker.run_once."""

    async def test_no_jobs_available(self, worker):
        summary = await worker.run_once()

        assert summary.leased == 0
        assert summary.results == []
        assert summary.message == "No jobs available"
        assert summary.timestamp.endswith("Z")

    async def test_successful_job_is_done(self, worker, job_store, job_factory, edge):
        """A 2xx response should finalize the job and record one attempt."""
        edge.respond("/functions/v1/seed", 200, {"seeded": True})
        job = await job_factory(
            workflow_run_id="run1",
            step_id="s1",
            payload={"call_path": "/functions/v1/seed", "body": {"x": 1}},
        )

        summary = await worker.run_once()

        assert summary.leased == 1
        result = summary.results[0]
        assert result.job_id == job.job_id
        assert result.ok is True
        assert result.status == 200
        assert result.response == {"seeded": True}

        stored = await job_store.get_job(job.job_id)
        assert stored.status == JobStatus.DONE

        request = edge.requests[0]
        assert request.headers[IDEMPOTENCY_HEADER] == "run1-s1"
        assert edge.json_bodies() == [{"x": 1}]

    async def test_uses_payload_method(self, worker, job_factory, edge):
        await job_factory(payload={"call_path": "/functions/v1/state", "method": "get"})

        await worker.run_once()

        assert edge.requests[0].method == "GET"

    async def test_error_response_requeues_then_fails(self, worker, job_store, job_factory, edge):
        """5xx responses are retried until max_attempts, then the job fails."""
        edge.respond("/functions/v1/seed", 500, {"error": "boom"})
        job = await job_factory(
            max_attempts=2, payload={"call_path": "/functions/v1/seed"}
        )

        first = await worker.run_once()

        assert first.results[0].ok is False
        assert first.results[0].status == 500
        stored = await job_store.get_job(job.job_id)
        assert stored.status == JobStatus.QUEUED
        assert stored.attempts == 1
        assert stored.next_run_at > utc_now()

        second = await worker.run_once(now=utc_now() + timedelta(hours=2))

        assert second.leased == 1
        stored = await job_store.get_job(job.job_id)
        assert stored.status == JobStatus.FAILED
        assert stored.attempts == 2

        attempts = await job_store.list_attempts(job.job_id)
        assert [a.status_code for a in attempts] == [500, 500]
        assert attempts[0].error_text == '{"error": "boom"}'

    async def test_idempotency_key_is_stable_across_retries(self, worker, job_factory, edge):
        edge.respond("/functions/v1/seed", 503, {"error": "busy"})
        await job_factory(
            workflow_run_id="run1", step_id="s1", payload={"call_path": "/functions/v1/seed"}
        )

        await worker.run_once()
        await worker.run_once(now=utc_now() + timedelta(hours=2))

        keys = [r.headers[IDEMPOTENCY_HEADER] for r in edge.requests]
        assert keys == ["run1-s1", "run1-s1"]

    async def test_missing_call_path(self, worker, job_store, job_factory, edge):
        """A payload without call_path fails the attempt without any HTTP call."""
        job = await job_factory(payload={"body": {"x": 1}})

        summary = await worker.run_once()

        result = summary.results[0]
        assert result.ok is False
        assert result.status == SYNTHETIC_FAILURE_STATUS
        assert result.error == "Missing call_path in job payload"
        assert edge.requests == []

        attempts = await job_store.list_attempts(job.job_id)
        assert attempts[0].status_code == SYNTHETIC_FAILURE_STATUS
        assert attempts[0].error_text == "Missing call_path in job payload"

    async def test_timeout_is_recorded_as_failed_attempt(
        self, worker, job_store, job_factory, edge
    ):
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(2)
            return httpx.Response(200, json={})

        edge.routes["/functions/v1/slow"] = slow
        job = await job_factory(payload={"call_path": "/functions/v1/slow", "timeout_ms": 50})

        summary = await worker.run_once()

        assert summary.results[0].status == SYNTHETIC_FAILURE_STATUS
        assert summary.results[0].error == "Request timeout after 50ms"
        stored = await job_store.get_job(job.job_id)
        assert stored.status == JobStatus.QUEUED
        assert stored.attempts == 1

    async def test_one_failure_does_not_affect_others(self, worker, job_store, job_factory, edge):
        """Jobs in a batch are isolated from each other's failures."""
        edge.respond("/functions/v1/ok", 200, {"ok": True})
        good = await job_factory(step_id="good", payload={"call_path": "/functions/v1/ok"})
        bad = await job_factory(step_id="bad", payload={})

        summary = await worker.run_once()

        assert summary.leased == 2
        by_id = {r.job_id: r for r in summary.results}
        assert by_id[good.job_id].ok is True
        assert by_id[bad.job_id].ok is False
        assert (await job_store.get_job(good.job_id)).status == JobStatus.DONE
        assert (await job_store.get_job(bad.job_id)).status == JobStatus.QUEUED

    async def test_respects_batch_size(self, job_store, dispatcher, settings, job_factory):
        worker = Worker(job_store, dispatcher, settings.model_copy(update={"batch_size": 1}))
        await job_factory(step_id="a")
        await job_factory(step_id="b")

        summary = await worker.run_once()

        assert summary.leased == 1

    async def test_store_errors_propagate_after_batch(self, dispatcher, settings, edge):
        """Failures to record outcomes surface to the caller once the batch settles."""
        jobs = [
            Job(job_id="j1", workflow_run_id="r", step_id="a", payload={"call_path": "/a"}),
            Job(job_id="j2", workflow_run_id="r", step_id="b", payload={"call_path": "/b"}),
        ]
        store = AsyncMock()
        store.lease.return_value = jobs
        store.finish_attempt.side_effect = RuntimeError("database unavailable")

        worker = Worker(store, dispatcher, settings)

        with pytest.raises(RuntimeError, match="database unavailable"):
            await worker.run_once()

        # Both jobs were dispatched before the error surfaced
        assert len(edge.requests) == 2
        assert store.finish_attempt.await_count == 2

    async def test_lease_errors_propagate(self, dispatcher, settings):
        store = AsyncMock()
        store.lease.side_effect = RuntimeError("connection refused")

        with pytest.raises(RuntimeError, match="connection refused"):
            await Worker(store, dispatcher, settings).run_once()
