"""
ArtifactIndex: in-memory lookups over the artifacts present in the tree.
"""

from typing import Iterator

from .models import NONE, Artifact, Permutation


class ArtifactIndex:
    """
    Index of generated artifacts, maintained alongside the artifact tree.

    Provides direct access by:
    - profile name (any permutation slot)
    - project identifier

    so stale lookups never need to parse file names back apart.
    """

    def __init__(self) -> None:
        self._artifacts: set[Artifact] = set()
        self._by_profile: dict[str, set[Artifact]] = {}
        self._by_project: dict[str, set[Artifact]] = {}

    def add(self, artifact: Artifact) -> None:
        self.discard(artifact)
        self._artifacts.add(artifact)
        self._by_project.setdefault(artifact.project, set()).add(artifact)
        for name in set(artifact.permutation.slots):
            if name != NONE:
                self._by_profile.setdefault(name, set()).add(artifact)

    def discard(self, artifact: Artifact) -> None:
        # Match by identity so an artifact re-planned under a new output path
        # still replaces the old entry.
        existing = self.get(artifact.project, artifact.permutation)
        if existing is None:
            return
        self._artifacts.discard(existing)
        _discard_from(self._by_project, existing.project, existing)
        for name in set(existing.permutation.slots):
            _discard_from(self._by_profile, name, existing)

    def get(self, project: str, permutation: Permutation) -> Artifact | None:
        for artifact in self._by_project.get(project, ()):
            if artifact.permutation == permutation:
                return artifact
        return None

    def for_profile(self, name: str) -> set[Artifact]:
        return set(self._by_profile.get(name, ()))

    def for_project(self, project: str) -> set[Artifact]:
        return set(self._by_project.get(project, ()))

    def clear(self) -> None:
        self._artifacts.clear()
        self._by_profile.clear()
        self._by_project.clear()

    def __len__(self) -> int:
        return len(self._artifacts)

    def __contains__(self, artifact: object) -> bool:
        return artifact in self._artifacts

    def __iter__(self) -> Iterator[Artifact]:
        return iter(sorted(self._artifacts, key=lambda a: str(a.path)))


def _discard_from(index: dict[str, set[Artifact]], key: str, artifact: Artifact) -> None:
    bucket = index.get(key)
    if bucket is None:
        return
    bucket.discard(artifact)
    if not bucket:
        del index[key]
