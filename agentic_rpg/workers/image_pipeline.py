# ABOUTME: Asynchronous image job pipeline: queueing, per-job tasks, timeouts and bounded linear-backoff retry.
# ABOUTME: Jobs move queued -> generating -> ready|failed; a sweeper expires old jobs and force-fails stuck ones.

import asyncio
import math
import random
import re
import time
import uuid
from collections.abc import Callable
from typing import Any, Protocol

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from agentic_rpg.models.image_job import (
    ETA_SECONDS,
    ImageJob,
    ImageJobTicket,
    ImageMode,
    ImageResult,
    JobStatus,
    JobStatusReport,
)
from agentic_rpg.utils.logging import log_job_event
from agentic_rpg.workers.exceptions import (
    ImageGenerationFailed,
    JobNotFound,
    JobRetriesExhausted,
    JobTimeout,
)

# Prompt sanitization
DISALLOWED_PROMPT_TERMS = ("nude", "naked", "sexual", "explicit", "gore", "violence")
MAX_PROMPT_CHARS = 200
DEFAULT_PROMPT = "fantasy adventure scene"

# Generator settings per mode: (diffusion steps, quality label)
MODE_PROFILES: dict[ImageMode, tuple[int, str]] = {
    ImageMode.PREVIEW: (20, "fast"),
    ImageMode.HQ: (50, "high"),
}

# Progress stays below this until the job is terminal
PROGRESS_CAP = 90

FALLBACK_IMAGES = {
    "tavern": "https://via.placeholder.com/512x512/8B4513/FFE4B5?text=Tavern",
    "dungeon": "https://via.placeholder.com/512x512/2F2F2F/8A8A8A?text=Dungeon",
    "forest": "https://via.placeholder.com/512x512/228B22/90EE90?text=Forest",
    "castle": "https://via.placeholder.com/512x512/708090/F5F5DC?text=Castle",
}
DEFAULT_FALLBACK_IMAGE = "https://via.placeholder.com/512x512/4682B4/F0F8FF?text=Adventure"

_SIZE_PATTERN = re.compile(r"^(\d+)x(\d+)$")


def sanitize_prompt(prompt: str) -> str:
    """
    Clean an image prompt before it reaches a generator.

    Bracketed style directives are dropped, whitespace is collapsed,
    disallowed terms are elided and the result is capped at 200 characters.
    An empty result becomes a generic default.
    """
    sanitized = re.sub(r"\[.*?\]", "", prompt or "")
    sanitized = re.sub(r"\s+", " ", sanitized.replace("\n", " ")).strip()
    for term in DISALLOWED_PROMPT_TERMS:
        sanitized = re.sub(rf"\b{term}\b", "", sanitized, flags=re.IGNORECASE)
    sanitized = re.sub(r"\s+", " ", sanitized).strip()
    if len(sanitized) > MAX_PROMPT_CHARS:
        sanitized = sanitized[:MAX_PROMPT_CHARS] + "..."
    return sanitized or DEFAULT_PROMPT


def fallback_image_url(scene_id: str) -> str:
    """Static placeholder picked by a keyword in the scene id"""
    for keyword, url in FALLBACK_IMAGES.items():
        if keyword in scene_id:
            return url
    return DEFAULT_FALLBACK_IMAGE


def parse_size(size: str) -> tuple[int, int]:
    """'512x512' -> (512, 512); raises ValueError on anything else"""
    match = _SIZE_PATTERN.match(size or "")
    if not match:
        raise ValueError(f"Invalid image size: '{size}' (expected WIDTHxHEIGHT)")
    return int(match.group(1)), int(match.group(2))


class ImageGenerator(Protocol):
    """Produces one image. Raises on failure; the pipeline owns retries and timeouts."""

    async def generate(
        self, prompt: str, seed: int, size: str, steps: int, quality: str
    ) -> ImageResult: ...


class MockImageGenerator:
    """
    Placeholder generator returning seeded picsum.photos URLs after a simulated delay.

    Args:
        preview_delay: Base simulated seconds for a fast (preview) image
        hq_delay: Base simulated seconds for a high quality image
        failures: Number of leading calls that raise ImageGenerationFailed
    """

    def __init__(self, preview_delay: float = 2.0, hq_delay: float = 10.0, failures: int = 0):
        self.preview_delay = preview_delay
        self.hq_delay = hq_delay
        self.failures = failures
        self.calls = 0

    async def generate(
        self, prompt: str, seed: int, size: str, steps: int, quality: str
    ) -> ImageResult:
        self.calls += 1
        base = self.preview_delay if quality == "fast" else self.hq_delay
        # Jitter is seeded so a replayed job waits the same time
        delay = base * (1 + random.Random(seed).random())
        if delay > 0:
            await asyncio.sleep(delay)

        if self.calls <= self.failures:
            raise ImageGenerationFailed(f"Simulated generation failure (call {self.calls})")

        width, height = parse_size(size)
        return ImageResult(
            url=f"https://picsum.photos/{width}/{height}?random={seed}",
            width=width,
            height=height,
            seed=seed,
            prompt=prompt,
            quality=quality,
            steps=steps,
        )


JobListener = Callable[[ImageJob], Any]


class ImageJobPipeline:
    """
    Tracks image jobs, each running as its own asyncio task.

    The active and completed registries are only changed under one asyncio
    lock. Status changes on a job come from its own task, except the
    sweeper's forced failure of a job that has outlived twice its timeout.
    """

    def __init__(
        self,
        generator: ImageGenerator | None = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        preview_timeout: float = 5.0,
        hq_timeout: float = 20.0,
        preview_duration: float = 4.0,
        hq_duration: float = 15.0,
        preview_size: str = "512x512",
        hq_size: str = "1024x1024",
        retention_seconds: float = 24 * 3600,
        sweep_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.generator = generator or MockImageGenerator()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.timeouts = {ImageMode.PREVIEW: preview_timeout, ImageMode.HQ: hq_timeout}
        self.durations = {ImageMode.PREVIEW: preview_duration, ImageMode.HQ: hq_duration}
        self.sizes = {ImageMode.PREVIEW: preview_size, ImageMode.HQ: hq_size}
        self.retention_seconds = retention_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock

        self._active: dict[str, ImageJob] = {}
        self._completed: dict[str, ImageJob] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._done: dict[str, asyncio.Event] = {}
        self._listeners: list[JobListener] = []
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings: Any, generator: ImageGenerator | None = None) -> "ImageJobPipeline":
        return cls(
            generator=generator,
            max_attempts=settings.image_max_attempts,
            base_delay=settings.image_retry_base_delay,
            preview_timeout=settings.image_preview_timeout,
            hq_timeout=settings.image_hq_timeout,
            preview_duration=settings.image_preview_duration,
            hq_duration=settings.image_hq_duration,
            preview_size=settings.image_preview_size,
            hq_size=settings.image_hq_size,
            retention_seconds=settings.image_retention_seconds,
            sweep_interval=settings.image_sweep_interval_seconds,
        )

    # --- submission -------------------------------------------------------

    async def request_image(
        self,
        scene_id: str,
        prompt: str,
        mode: ImageMode | str = ImageMode.PREVIEW,
        seed: int = 0,
        size: str | None = None,
    ) -> ImageJobTicket:
        """
        Queue a new image job and start it in the background.

        Returns immediately with status 'queued'; generation never blocks the caller.

        Raises:
            ValueError: If mode or size is invalid
        """
        mode = ImageMode(mode)
        job = self._new_job(
            job_id=f"img_{uuid.uuid4().hex[:12]}",
            scene_id=scene_id,
            prompt=prompt,
            mode=mode,
            seed=seed,
            size=size or self.sizes[mode],
        )
        return await self._submit(job)

    async def rerender_hq(self, job_id: str) -> ImageJobTicket:
        """
        Re-issue a completed preview job's prompt and seed as a linked HQ job.

        Calling it again for the same preview returns the existing HQ job.

        Raises:
            JobNotFound: If job_id is not a completed job
            ValueError: If the job is already high quality or did not finish ready
        """
        parent = self._completed.get(job_id)
        if parent is None:
            raise JobNotFound(job_id)
        if parent.mode == ImageMode.HQ:
            raise ValueError(f"Job {job_id} is already high quality")
        if parent.status != JobStatus.READY:
            raise ValueError(f"Job {job_id} ended {parent.status.value}, only ready previews re-render")

        hq_job_id = f"{job_id}_hq"
        existing = self._active.get(hq_job_id) or self._completed.get(hq_job_id)
        if existing is not None:
            return ImageJobTicket(
                job_id=hq_job_id,
                eta_seconds=self._eta(existing),
                status=existing.status,
            )

        job = self._new_job(
            job_id=hq_job_id,
            scene_id=parent.scene_id,
            prompt=parent.prompt,
            mode=ImageMode.HQ,
            seed=parent.seed,
            size=self.sizes[ImageMode.HQ],
            parent_job_id=job_id,
        )
        return await self._submit(job)

    def _new_job(self, job_id: str, scene_id: str, prompt: str, mode: ImageMode,
                 seed: int, size: str, parent_job_id: str | None = None) -> ImageJob:
        parse_size(size)
        return ImageJob(
            id=job_id,
            scene_id=scene_id,
            prompt=prompt,
            sanitized_prompt=sanitize_prompt(prompt),
            mode=mode,
            seed=seed,
            size=size,
            parent_job_id=parent_job_id,
            created_at=self._clock(),
        )

    async def _submit(self, job: ImageJob) -> ImageJobTicket:
        async with self._lock:
            self._active[job.id] = job
            self._done[job.id] = asyncio.Event()

        task = asyncio.create_task(self._run_job(job), name=f"image-job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(self._on_task_done)

        log_job_event(job.id, "queued", job.status.value, mode=job.mode.value,
                      scene=job.scene_id, parent=job.parent_job_id)
        return ImageJobTicket(job_id=job.id, eta_seconds=ETA_SECONDS[job.mode])

    def _on_task_done(self, task: asyncio.Task) -> None:
        job_id = task.get_name().removeprefix("image-job-")
        self._tasks.pop(job_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(f"Image job task {job_id} crashed: {type(exc).__name__}: {exc}")

    # --- job task ---------------------------------------------------------

    async def _run_job(self, job: ImageJob) -> None:
        timeout = self.timeouts[job.mode]
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.base_delay, increment=self.base_delay),
            retry=retry_if_exception_type(Exception),
            before_sleep=self._requeue_before_retry(job),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._attempt(job, timeout)
        except Exception as e:
            exhausted = JobRetriesExhausted(job.id, job.attempts, str(e))
            logger.warning(str(exhausted))
            await self._settle(job, JobStatus.FAILED, error=str(exhausted))
            return

        await self._settle(job, JobStatus.READY, result=result)

    async def _attempt(self, job: ImageJob, timeout: float) -> ImageResult:
        job.transition(JobStatus.GENERATING)
        job.attempts += 1
        job.started_at = self._clock()
        log_job_event(job.id, "generating", job.status.value, job.attempts, level="DEBUG")

        steps, quality = MODE_PROFILES[job.mode]
        try:
            return await asyncio.wait_for(
                self.generator.generate(job.sanitized_prompt, job.seed, job.size, steps, quality),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise JobTimeout(job.id, timeout) from e

    def _requeue_before_retry(self, job: ImageJob) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            if job.status == JobStatus.GENERATING:
                job.transition(JobStatus.QUEUED)
            error = retry_state.outcome.exception() if retry_state.outcome else None
            wait = retry_state.next_action.sleep if retry_state.next_action else 0
            log_job_event(
                job.id, "retry scheduled", job.status.value, job.attempts,
                level="WARNING", error=str(error), wait_seconds=wait,
            )
        return before_sleep

    async def _settle(
        self,
        job: ImageJob,
        status: JobStatus,
        result: ImageResult | None = None,
        error: str | None = None,
    ) -> bool:
        """Move an active job to a terminal status. Returns False if it already settled."""
        async with self._lock:
            if job.status.terminal or job.id not in self._active:
                return False
            job.transition(status)
            job.result = result
            job.error = error
            job.completed_at = self._clock()
            job.progress = 100
            del self._active[job.id]
            self._completed[job.id] = job

        event = self._done.get(job.id)
        if event is not None:
            event.set()

        log_job_event(
            job.id, status.value, status.value, job.attempts,
            level="INFO" if status == JobStatus.READY else "WARNING",
            error=error,
        )
        self._notify(job)
        return True

    def _notify(self, job: ImageJob) -> None:
        for listener in list(self._listeners):
            try:
                listener(job)
            except Exception as e:
                logger.error(f"Image job listener failed for {job.id}: {e}")

    # --- queries ----------------------------------------------------------

    def get_job(self, job_id: str) -> ImageJob | None:
        return self._active.get(job_id) or self._completed.get(job_id)

    def get_status(self, job_id: str) -> JobStatusReport:
        """
        Current status of a job.

        Progress never decreases between polls and stays at or below 90
        until the job is terminal. Failed jobs report a fallback image url.
        Unknown ids report status 'not_found'.
        """
        job = self.get_job(job_id)
        if job is None:
            return JobStatusReport(job_id=job_id, status="not_found")

        if job.status.terminal:
            failed = job.status == JobStatus.FAILED
            return JobStatusReport(
                job_id=job.id,
                status=job.status.value,
                progress=100,
                eta_seconds=0,
                url=fallback_image_url(job.scene_id) if failed else job.result.url,
                fallback=failed,
                mode=job.mode,
                attempts=job.attempts,
                parent_job_id=job.parent_job_id,
                error=job.error,
            )

        job.progress = max(job.progress, self._estimate_progress(job))
        return JobStatusReport(
            job_id=job.id,
            status=job.status.value,
            progress=job.progress,
            eta_seconds=self._eta(job),
            mode=job.mode,
            attempts=job.attempts,
            parent_job_id=job.parent_job_id,
        )

    def _estimate_progress(self, job: ImageJob) -> int:
        if job.status != JobStatus.GENERATING or job.started_at is None:
            return 0
        elapsed = self._clock() - job.started_at
        return min(PROGRESS_CAP, math.floor(elapsed / self.durations[job.mode] * 100))

    def _eta(self, job: ImageJob) -> int:
        if job.status.terminal:
            return 0
        if job.status == JobStatus.QUEUED or job.started_at is None:
            return ETA_SECONDS[job.mode]
        elapsed = self._clock() - job.started_at
        return max(0, math.ceil(self.durations[job.mode] - elapsed))

    async def wait_for(self, job_id: str, timeout: float | None = None) -> JobStatusReport:
        """
        Wait until a job is terminal and return its final status.

        Raises:
            JobNotFound: If the job is unknown or already swept
            asyncio.TimeoutError: If timeout elapses first
        """
        event = self._done.get(job_id)
        if event is None:
            raise JobNotFound(job_id)
        await asyncio.wait_for(event.wait(), timeout=timeout)
        return self.get_status(job_id)

    def add_listener(self, listener: JobListener) -> None:
        """Register a callable run with each job as it reaches ready or failed"""
        self._listeners.append(listener)

    def metrics(self) -> dict[str, Any]:
        distribution = {status.value: 0 for status in JobStatus}
        for job in [*self._active.values(), *self._completed.values()]:
            distribution[job.status.value] += 1
        return {
            "active_jobs": len(self._active),
            "completed_jobs": len(self._completed),
            "running_tasks": len(self._tasks),
            "status_distribution": distribution,
        }

    # --- maintenance ------------------------------------------------------

    async def sweep(self) -> dict[str, int]:
        """
        Drop completed jobs past the retention window and force-fail active
        jobs older than twice their mode's timeout.

        Returns:
            Counts of removed and force-failed jobs
        """
        now = self._clock()
        stuck = []
        removed = 0
        async with self._lock:
            for job_id, job in list(self._completed.items()):
                finished = job.completed_at if job.completed_at is not None else job.created_at
                if now - finished > self.retention_seconds:
                    del self._completed[job_id]
                    self._done.pop(job_id, None)
                    removed += 1
            for job in self._active.values():
                if now - job.created_at > 2 * self.timeouts[job.mode]:
                    stuck.append(job)

        expired = 0
        for job in stuck:
            task = self._tasks.get(job.id)
            if task is not None and not task.done():
                task.cancel()
            timeout = JobTimeout(job.id, 2 * self.timeouts[job.mode])
            if await self._settle(job, JobStatus.FAILED, error=str(timeout)):
                expired += 1

        if removed or expired:
            logger.info(f"Image job sweep: removed {removed} completed, force-failed {expired} stuck")
        return {"removed": removed, "expired": expired}

    def start_sweeper(self) -> asyncio.Task:
        """Run sweep() every sweep_interval seconds until shutdown()"""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="image-job-sweeper")
        return self._sweeper

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            await self.sweep()

    async def shutdown(self) -> None:
        """Stop the sweeper and cancel every running job task"""
        tasks = list(self._tasks.values())
        if self._sweeper is not None:
            tasks.append(self._sweeper)
            self._sweeper = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Image pipeline shut down ({len(tasks)} task(s) cancelled)")
