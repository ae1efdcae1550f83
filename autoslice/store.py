"""
ArtifactStore: the on-disk tree of generated gcode and its index.
"""

import logging
import shutil
from pathlib import Path
from typing import Iterable

from .index import ArtifactIndex
from .models import Artifact
from .planner import ARTIFACT_SUFFIX

logger = logging.getLogger(__name__)


class ArtifactStore:
    """
    Derived output tree. Every file in it can be deleted and regenerated from
    the projects and profiles, so nothing here is versioned.

    Usage:
        store = ArtifactStore("/path/to/projects/gcode")
        existed = store.ensure_root()

        store.prepare(artifact)      # before slicing
        store.record(artifact)       # after the slicer wrote the file

        store.remove_for_profile("mk3")
        store.remove_for_project("boxes/box.3mf")
    """

    def __init__(self, output_dir: str | Path):
        self.root = Path(output_dir)
        self.index = ArtifactIndex()

    def ensure_root(self) -> bool:
        """Create the output root. Returns True if it already existed."""
        existed = self.root.is_dir()
        self.root.mkdir(parents=True, exist_ok=True)
        return existed

    def wipe(self) -> None:
        """Delete the whole tree and start from an empty root."""
        if self.root.exists():
            logger.warning("Deleting all gcode in %s", self.root)
            shutil.rmtree(self.root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.index.clear()

    def prepare(self, artifact: Artifact) -> None:
        artifact.path.parent.mkdir(parents=True, exist_ok=True)

    def record(self, artifact: Artifact) -> None:
        self.index.add(artifact)

    def exists(self, artifact: Artifact) -> bool:
        return artifact.path.is_file()

    def artifacts(self) -> list[Artifact]:
        return list(self.index)

    def remove(self, artifact: Artifact) -> None:
        artifact.path.unlink(missing_ok=True)
        self.index.discard(artifact)

    def remove_for_profile(self, name: str) -> list[Artifact]:
        """Delete every artifact that has ``name`` in any permutation slot."""
        return self._remove_all(self.index.for_profile(name))

    def remove_for_project(self, project: str) -> list[Artifact]:
        """
        Stale sweep: delete every artifact derived from a project, whichever
        permutation produced it, so no output outlives its source.
        """
        return self._remove_all(self.index.for_project(project))

    def remove_unplanned(self, project: str, planned: Iterable[Artifact]) -> list[Artifact]:
        """Delete the artifacts of a project whose permutation is no longer planned."""
        keys = {artifact.key for artifact in planned}
        return self._remove_all(
            a for a in self.index.for_project(project) if a.key not in keys
        )

    def adopt(self, expected: Iterable[Artifact]) -> list[Path]:
        """
        Take over a tree left by a previous run.

        Expected artifacts found on disk are indexed. Any other gcode file
        cannot belong to a live (project, permutation) pair and is deleted.
        Returns the deleted orphan paths.
        """
        self.index.clear()
        expected_paths: set[Path] = set()
        for artifact in expected:
            expected_paths.add(artifact.path)
            if self.exists(artifact):
                self.index.add(artifact)

        orphans = []
        if not self.root.is_dir():
            return orphans
        for path in sorted(self.root.rglob(f"*{ARTIFACT_SUFFIX}")):
            if path.is_file() and path not in expected_paths:
                logger.info("Deleting orphaned %s", path)
                path.unlink()
                orphans.append(path)
        self._prune_empty_dirs()
        return orphans

    def _remove_all(self, artifacts: Iterable[Artifact]) -> list[Artifact]:
        removed = []
        for artifact in sorted(artifacts, key=lambda a: str(a.path)):
            logger.info("Deleting stale %s", artifact.path)
            self.remove(artifact)
            removed.append(artifact)
        return removed

    def _prune_empty_dirs(self) -> None:
        # Deepest first so parents empty out before they are checked
        dirs = sorted(
            (p for p in self.root.rglob("*") if p.is_dir()),
            key=lambda p: len(p.parts),
            reverse=True,
        )
        for directory in dirs:
            if not any(directory.iterdir()):
                directory.rmdir()
