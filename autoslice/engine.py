"""
Regeneration engine: serialized, incremental rebuilds of the artifact tree.

Every request goes through one queue drained by a single worker task, so at
most one pass touches the tree at a time. Slicer calls inside a pass run
concurrently; passes never overlap.
"""

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Iterable

from .catalog import discover_projects, read_catalog
from .distribution import Distributor
from .models import (
    Artifact,
    EngineState,
    PassReport,
    ProfileCatalog,
    RegenerateAll,
    RegenerateForDirtyProfile,
    RegenerateProject,
    RegenerationRequest,
    SweepProject,
)
from .planner import plan_artifacts
from .progress import NullProgressReporter, ProgressReporter
from .slicer import SliceError, Slicer
from .store import ArtifactStore

logger = logging.getLogger(__name__)


class RegenerationEngine:
    """
    Keeps the artifact tree consistent with the projects and profiles on disk.

    Usage:
        engine = RegenerationEngine(projects, profiles, output, slicer, distributor)
        async with engine:
            engine.bootstrap()
            engine.submit(RegenerateForDirtyProfile(profile="MK3S"))
            await engine.join()

    Full regenerations are admission-controlled: when more than one is
    already pending, further ones are dropped. Scoped requests are always
    queued. Selective uploads run as tracked background tasks that
    ``join()`` also waits for.
    """

    def __init__(
        self,
        projects_dir: Path,
        profiles_dir: Path,
        output_dir: Path,
        slicer: Slicer,
        distributor: Distributor,
        reporter: ProgressReporter | None = None,
        slice_concurrency: int | None = None,
        history: int = 100,
    ):
        self.projects_dir = Path(projects_dir)
        self.profiles_dir = Path(profiles_dir)
        self.store = ArtifactStore(output_dir)
        self.slicer = slicer
        self.distributor = distributor
        self.reporter: ProgressReporter = reporter or NullProgressReporter()
        self.reports: deque[PassReport] = deque(maxlen=history)

        self._slice_limit = asyncio.Semaphore(slice_concurrency) if slice_concurrency else None
        self._queue: asyncio.Queue[RegenerationRequest] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._unfinished = 0
        self._full_requested = 0
        self._full_completed = 0

    @property
    def output_dir(self) -> Path:
        return self.store.root

    @property
    def state(self) -> EngineState:
        return EngineState.DRAINING if self._unfinished else EngineState.IDLE

    # --- Lifecycle ---

    async def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="autoslice-engine")

    async def stop(self) -> None:
        """Finish everything queued, then stop the worker."""
        if self._worker is None:
            return
        await self.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def __aenter__(self) -> "RegenerationEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def join(self) -> None:
        """Wait until the queue is drained and background uploads have finished."""
        await self._queue.join()
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def bootstrap(self) -> bool:
        """
        Prepare the output tree before watching.

        A missing tree means this is the first run: a full regeneration is
        queued and True returned. Otherwise the existing tree is adopted
        against the current catalog and projects.
        """
        if not self.store.ensure_root():
            logger.info("No previous output in %s, regenerating everything", self.output_dir)
            self.submit(RegenerateAll())
            return True

        catalog = read_catalog(self.profiles_dir)
        expected = [
            artifact
            for project in discover_projects(self.projects_dir, self.output_dir)
            for artifact in plan_artifacts(project, catalog, self.output_dir)
        ]
        orphans = self.store.adopt(expected)
        logger.info(
            "Resuming from last run with %d artifacts (%d orphans removed). To force a "
            "full regenerate and upload, delete %s and re-run or change a profile",
            len(self.store.index), len(orphans), self.output_dir,
        )
        return False

    # --- Requests ---

    def submit(self, request: RegenerationRequest) -> bool:
        """Queue a request. Returns False if a full regeneration was throttled."""
        if isinstance(request, RegenerateAll):
            pending = self._full_requested - self._full_completed
            if pending > 1:
                logger.warning(
                    "Throttling full regenerate and upload, %d already pending", pending
                )
                return False
            self._full_requested += 1
        self._unfinished += 1
        self._queue.put_nowait(request)
        logger.debug("Queued %s", request.describe())
        return True

    async def _run(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                self.reports.append(await self._execute(request))
            except Exception:
                logger.exception("Pass '%s' failed", request.describe())
            finally:
                self._unfinished -= 1
                self._queue.task_done()

    async def _execute(self, request: RegenerationRequest) -> PassReport:
        description = request.describe()
        report = PassReport(request=description)
        self.reporter.update_status(f"Starting {description}")

        if isinstance(request, RegenerateAll):
            await self._regenerate_all(report)
        elif isinstance(request, RegenerateProject):
            await self._regenerate_project(request.project, report)
        elif isinstance(request, RegenerateForDirtyProfile):
            await self._regenerate_for_profile(request.profile, report)
        elif isinstance(request, SweepProject):
            self._sweep_project(request.project, report)
        else:
            raise TypeError(f"Unknown request {request!r}")

        self.reporter.update_status(
            f"Finished {description}: {len(report.sliced)} sliced, "
            f"{len(report.failed)} failed, {len(report.removed)} removed"
        )
        return report

    # --- Passes ---

    async def _regenerate_all(self, report: PassReport) -> None:
        catalog = read_catalog(self.profiles_dir)
        try:
            self.store.wipe()
            projects = discover_projects(self.projects_dir, self.output_dir)
            for i, project in enumerate(projects, 1):
                self.reporter.step(project, i, len(projects))
                artifacts = plan_artifacts(project, catalog, self.output_dir)
                await self._slice_all(artifacts, catalog, report)
        finally:
            self._full_completed += 1

        # Upload only after the last of any chained full regenerations
        if self._full_completed == self._full_requested:
            await self.distributor.mirror_all(self.output_dir, self.store.artifacts())
            report.distributed = True
        else:
            logger.info(
                "Deferring bulk upload, %d full regenerations still pending",
                self._full_requested - self._full_completed,
            )

    async def _regenerate_project(self, project: str, report: PassReport) -> None:
        if not (self.projects_dir / project).is_file():
            logger.warning("Project %s no longer exists, skipping", project)
            return
        catalog = read_catalog(self.profiles_dir)
        logger.info("Slicing %s", project)
        artifacts = plan_artifacts(project, catalog, self.output_dir)
        produced = await self._slice_all(artifacts, catalog, report)
        self._distribute(produced, report)

    async def _regenerate_for_profile(self, profile: str, report: PassReport) -> None:
        """
        Rebuild what a changed profile affects.

        Permutations mentioning the profile are always re-sliced. When a
        category gains its first profile or loses its last one, the ``none``
        placeholder in that slot appears or disappears, so each project's
        full plan is also reconciled against the index: unplanned artifacts
        are deleted and planned ones that are missing are sliced.
        """
        catalog = read_catalog(self.profiles_dir)
        report.removed = self.store.remove_for_profile(profile)

        produced: list[Artifact] = []
        projects = discover_projects(self.projects_dir, self.output_dir)
        for i, project in enumerate(projects, 1):
            planned = plan_artifacts(project, catalog, self.output_dir)
            report.removed.extend(self.store.remove_unplanned(project, planned))
            indexed = {a.key for a in self.store.index.for_project(project)}
            artifacts = [
                a for a in planned
                if a.permutation.mentions(profile) or a.key not in indexed
            ]
            if not artifacts:
                continue
            self.reporter.step(project, i, len(projects))
            produced.extend(await self._slice_all(artifacts, catalog, report))
        self._distribute(produced, report)

    def _sweep_project(self, project: str, report: PassReport) -> None:
        report.removed = self.store.remove_for_project(project)

    # --- Slicing ---

    async def _slice_all(
        self,
        artifacts: list[Artifact],
        catalog: ProfileCatalog,
        report: PassReport,
    ) -> list[Artifact]:
        results = await asyncio.gather(*(
            self._slice_one(artifact, catalog) for artifact in artifacts
        ))
        produced = []
        for artifact, ok in zip(artifacts, results):
            if ok:
                produced.append(artifact)
                report.sliced.append(artifact)
            else:
                report.failed.append(artifact)
        return produced

    async def _slice_one(self, artifact: Artifact, catalog: ProfileCatalog) -> bool:
        if self._slice_limit is None:
            return await self._invoke_slicer(artifact, catalog)
        async with self._slice_limit:
            return await self._invoke_slicer(artifact, catalog)

    async def _invoke_slicer(self, artifact: Artifact, catalog: ProfileCatalog) -> bool:
        try:
            self.store.prepare(artifact)
            await self.slicer.slice(
                self.projects_dir / artifact.project,
                artifact.path,
                catalog.profile_files(artifact.permutation),
            )
        except SliceError as e:
            logger.error("Slicing %s failed: %s", artifact.path.name, e)
            self._discard_partial(artifact)
            return False
        except Exception:
            logger.exception("Slicing %s failed", artifact.path.name)
            self._discard_partial(artifact)
            return False

        if not self.store.exists(artifact):
            logger.error("Slicer produced no output for %s", artifact.path)
            return False
        self.store.record(artifact)
        return True

    def _discard_partial(self, artifact: Artifact) -> None:
        # A failed slice must not leave an unindexed file behind
        if artifact.path.exists():
            logger.info("Deleting partial output %s", artifact.path)
        self.store.remove(artifact)

    # --- Distribution ---

    def _distribute(self, artifacts: Iterable[Artifact], report: PassReport) -> None:
        artifacts = list(artifacts)
        if not artifacts or not self.distributor.targets:
            return
        task = asyncio.create_task(
            self.distributor.distribute(artifacts, self.output_dir),
            name="autoslice-upload",
        )
        self._background.add(task)
        task.add_done_callback(self._on_upload_done)
        report.distributed = True

    def _on_upload_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Upload failed: %s", error, exc_info=error)
