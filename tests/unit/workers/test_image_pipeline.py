# ABOUTME: Unit tests for the asynchronous image job pipeline.
# ABOUTME: Covers job lifecycle, retries, timeouts, HQ re-renders, progress, sweeping and shutdown.

import asyncio

import pytest

from agentic_rpg.models.image_job import ImageMode, ImageResult, JobStatus
from agentic_rpg.workers.exceptions import ImageGenerationFailed, JobNotFound
from agentic_rpg.workers.image_pipeline import (
    DEFAULT_FALLBACK_IMAGE,
    DEFAULT_PROMPT,
    FALLBACK_IMAGES,
    ImageJobPipeline,
    MockImageGenerator,
    fallback_image_url,
    parse_size,
    sanitize_prompt,
)


# --- Helper Classes ---

class FakeClock:
    """Manually advanced pipeline clock"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class GatedGenerator:
    """Generator that blocks until its gate is opened"""

    def __init__(self):
        self.gate = asyncio.Event()
        self.calls = 0

    async def generate(self, prompt, seed, size, steps, quality) -> ImageResult:
        self.calls += 1
        await self.gate.wait()
        width, height = parse_size(size)
        return ImageResult(url=f"https://img.test/{seed}", width=width, height=height,
                           seed=seed, prompt=prompt, quality=quality, steps=steps)


async def settle_until(predicate, rounds: int = 200) -> None:
    """Yield to the event loop until predicate() holds"""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never held")


def make_pipeline(generator=None, clock=None, **kwargs) -> ImageJobPipeline:
    kwargs.setdefault("base_delay", 0)
    return ImageJobPipeline(
        generator=generator or MockImageGenerator(preview_delay=0, hq_delay=0),
        clock=clock or FakeClock(),
        **kwargs,
    )


class TestRequestImage:
    """Test suite for submission and completion"""

    @pytest.mark.asyncio
    async def test_ticket_returns_immediately_then_ready(self):
        pipeline = make_pipeline()
        ticket = await pipeline.request_image("tavern_start", "a warm tavern", seed=42)

        assert ticket.status == JobStatus.QUEUED
        assert ticket.eta_seconds == 3
        report = await pipeline.wait_for(ticket.job_id, timeout=5)

        assert report.status == "ready"
        assert report.progress == 100
        assert report.url == "https://picsum.photos/512/512?random=42"
        assert report.attempts == 1
        assert report.fallback is False

    @pytest.mark.asyncio
    async def test_hq_mode_uses_hq_size(self):
        pipeline = make_pipeline()
        ticket = await pipeline.request_image("tavern_start", "a tavern", mode="hq", seed=7)
        assert ticket.eta_seconds == 12
        report = await pipeline.wait_for(ticket.job_id, timeout=5)
        assert report.url == "https://picsum.photos/1024/1024?random=7"

    @pytest.mark.asyncio
    async def test_invalid_size_and_mode(self):
        pipeline = make_pipeline()
        with pytest.raises(ValueError):
            await pipeline.request_image("s", "p", size="huge")
        with pytest.raises(ValueError):
            await pipeline.request_image("s", "p", mode="ultra")

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            ImageJobPipeline(max_attempts=0)


class TestRetries:
    """Test suite for retry, exhaustion and timeout handling"""

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self):
        generator = MockImageGenerator(preview_delay=0, hq_delay=0, failures=2)
        pipeline = make_pipeline(generator, max_attempts=3)
        ticket = await pipeline.request_image("tavern_start", "a tavern", seed=1)

        report = await pipeline.wait_for(ticket.job_id, timeout=5)
        job = pipeline.get_job(ticket.job_id)

        assert report.status == "ready"
        assert report.attempts == 3
        assert job.status_history == [
            JobStatus.QUEUED, JobStatus.GENERATING, JobStatus.QUEUED, JobStatus.GENERATING,
            JobStatus.QUEUED, JobStatus.GENERATING, JobStatus.READY,
        ]

    @pytest.mark.asyncio
    async def test_exhausted_job_fails_with_fallback(self):
        generator = MockImageGenerator(preview_delay=0, hq_delay=0, failures=5)
        pipeline = make_pipeline(generator, max_attempts=2)
        ticket = await pipeline.request_image("tavern_start", "a tavern")

        report = await pipeline.wait_for(ticket.job_id, timeout=5)

        assert report.status == "failed"
        assert report.attempts == 2
        assert report.fallback is True
        assert report.url == FALLBACK_IMAGES["tavern"]
        assert "failed after 2 attempt(s)" in report.error
        assert generator.calls == 2

    @pytest.mark.asyncio
    async def test_attempt_timeout(self):
        generator = GatedGenerator()
        pipeline = make_pipeline(generator, max_attempts=1, preview_timeout=0.01)
        ticket = await pipeline.request_image("forest_path", "trees")

        report = await pipeline.wait_for(ticket.job_id, timeout=5)

        assert report.status == "failed"
        assert "timed out" in report.error
        assert report.url == FALLBACK_IMAGES["forest"]


class TestQueries:
    """Test suite for status, progress and lookups"""

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        pipeline = make_pipeline()
        assert pipeline.get_status("img_missing").status == "not_found"
        with pytest.raises(JobNotFound):
            await pipeline.wait_for("img_missing")

    @pytest.mark.asyncio
    async def test_progress_is_capped_and_never_decreases(self):
        clock = FakeClock()
        generator = GatedGenerator()
        pipeline = make_pipeline(generator, clock=clock, preview_duration=4.0)
        ticket = await pipeline.request_image("tavern_start", "a tavern")
        job = pipeline.get_job(ticket.job_id)
        await settle_until(lambda: job.status == JobStatus.GENERATING)

        clock.now += 2
        halfway = pipeline.get_status(ticket.job_id)
        assert halfway.progress == 50
        assert halfway.eta_seconds == 2

        clock.now += 100
        assert pipeline.get_status(ticket.job_id).progress == 90

        clock.now -= 101
        assert pipeline.get_status(ticket.job_id).progress == 90

        generator.gate.set()
        assert (await pipeline.wait_for(ticket.job_id, timeout=5)).progress == 100

    @pytest.mark.asyncio
    async def test_listeners_see_terminal_jobs(self):
        pipeline = make_pipeline()
        seen = []

        def broken_listener(job):
            raise RuntimeError("listener bug")

        pipeline.add_listener(broken_listener)
        pipeline.add_listener(lambda job: seen.append((job.id, job.status)))
        ticket = await pipeline.request_image("tavern_start", "a tavern")
        await pipeline.wait_for(ticket.job_id, timeout=5)

        assert seen == [(ticket.job_id, JobStatus.READY)]

    @pytest.mark.asyncio
    async def test_metrics(self):
        pipeline = make_pipeline()
        ticket = await pipeline.request_image("tavern_start", "a tavern")
        await pipeline.wait_for(ticket.job_id, timeout=5)
        metrics = pipeline.metrics()
        assert metrics["completed_jobs"] == 1
        assert metrics["active_jobs"] == 0
        assert metrics["status_distribution"]["ready"] == 1


class TestRerenderHQ:
    """Test suite for HQ re-renders of completed previews"""

    @pytest.mark.asyncio
    async def test_rerender_links_to_preview(self):
        pipeline = make_pipeline()
        preview = await pipeline.request_image("tavern_start", "a tavern", seed=99)
        await pipeline.wait_for(preview.job_id, timeout=5)

        ticket = await pipeline.rerender_hq(preview.job_id)
        again = await pipeline.rerender_hq(preview.job_id)
        report = await pipeline.wait_for(ticket.job_id, timeout=5)

        assert ticket.job_id == f"{preview.job_id}_hq"
        assert again.job_id == ticket.job_id
        assert report.mode == ImageMode.HQ
        assert report.parent_job_id == preview.job_id
        assert report.url == "https://picsum.photos/1024/1024?random=99"

    @pytest.mark.asyncio
    async def test_rerender_requires_completed_preview(self):
        generator = GatedGenerator()
        pipeline = make_pipeline(generator)
        pending = await pipeline.request_image("tavern_start", "a tavern")

        with pytest.raises(JobNotFound):
            await pipeline.rerender_hq(pending.job_id)
        with pytest.raises(JobNotFound):
            await pipeline.rerender_hq("img_missing")
        await pipeline.shutdown()

    @pytest.mark.asyncio
    async def test_rerender_of_hq_is_rejected(self):
        pipeline = make_pipeline()
        hq = await pipeline.request_image("tavern_start", "a tavern", mode=ImageMode.HQ)
        await pipeline.wait_for(hq.job_id, timeout=5)
        with pytest.raises(ValueError):
            await pipeline.rerender_hq(hq.job_id)

    @pytest.mark.asyncio
    async def test_rerender_of_failed_preview_is_rejected(self):
        generator = MockImageGenerator(preview_delay=0, hq_delay=0, failures=1)
        pipeline = make_pipeline(generator, max_attempts=1)
        preview = await pipeline.request_image("tavern_start", "a tavern")
        report = await pipeline.wait_for(preview.job_id, timeout=5)
        assert report.status == "failed"

        with pytest.raises(ValueError, match="only ready previews"):
            await pipeline.rerender_hq(preview.job_id)
        assert pipeline.get_job(f"{preview.job_id}_hq") is None


class TestMaintenance:
    """Test suite for sweeping and shutdown"""

    @pytest.mark.asyncio
    async def test_sweep_removes_expired_jobs(self):
        clock = FakeClock()
        pipeline = make_pipeline(clock=clock, retention_seconds=60)
        ticket = await pipeline.request_image("tavern_start", "a tavern")
        await pipeline.wait_for(ticket.job_id, timeout=5)

        assert await pipeline.sweep() == {"removed": 0, "expired": 0}
        clock.now += 61
        assert await pipeline.sweep() == {"removed": 1, "expired": 0}
        assert pipeline.get_status(ticket.job_id).status == "not_found"

    @pytest.mark.asyncio
    async def test_sweep_force_fails_stuck_jobs(self):
        clock = FakeClock()
        generator = GatedGenerator()
        pipeline = make_pipeline(generator, clock=clock, preview_timeout=5.0)
        ticket = await pipeline.request_image("tavern_start", "a tavern")
        job = pipeline.get_job(ticket.job_id)
        await settle_until(lambda: job.status == JobStatus.GENERATING)

        clock.now += 11
        assert await pipeline.sweep() == {"removed": 0, "expired": 1}

        report = await pipeline.wait_for(ticket.job_id, timeout=5)
        assert report.status == "failed"
        assert report.fallback is True

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_jobs(self):
        pipeline = make_pipeline(GatedGenerator())
        await pipeline.request_image("tavern_start", "a tavern")
        pipeline.start_sweeper()

        await pipeline.shutdown()
        await asyncio.sleep(0)

        assert pipeline.metrics()["running_tasks"] == 0


class TestHelpers:
    """Test suite for prompt sanitizing and fallbacks"""

    def test_sanitize_prompt(self):
        assert sanitize_prompt("[Style: noir]\nA  gore-free\ttavern") == "A -free tavern"
        assert sanitize_prompt("[only directives]") == DEFAULT_PROMPT
        long = sanitize_prompt("x" * 300)
        assert len(long) == 203
        assert long.endswith("...")

    def test_fallback_image_url(self):
        assert fallback_image_url("dark_dungeon_3") == FALLBACK_IMAGES["dungeon"]
        assert fallback_image_url("market") == DEFAULT_FALLBACK_IMAGE

    def test_parse_size(self):
        assert parse_size("640x480") == (640, 480)
        with pytest.raises(ValueError):
            parse_size("640by480")

    @pytest.mark.asyncio
    async def test_mock_generator_failures(self):
        generator = MockImageGenerator(preview_delay=0, hq_delay=0, failures=1)
        with pytest.raises(ImageGenerationFailed):
            await generator.generate("p", 1, "512x512", 20, "fast")
        result = await generator.generate("p", 1, "512x512", 20, "fast")
        assert result.url == "https://picsum.photos/512/512?random=1"
