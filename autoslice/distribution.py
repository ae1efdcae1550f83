"""
Distribution of artifacts to remote targets.

Bulk mode mirrors the whole output tree to every target after a full
regeneration and leaves diffing to rsync. Selective mode copies exactly the
artifacts a scoped pass produced, one transfer per (artifact, target).
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Iterable

from .models import Artifact, Target
from .transfer import Transfer, TransferError

logger = logging.getLogger(__name__)

_WILDCARDS = re.compile(r"([\\\[\]*?])")


class Distributor:
    """
    Maps artifacts onto the targets allowed to receive them and issues transfers.

    Transfer failures are logged and never raised: a target that fails stays
    out of sync until the next pass touches the same files.
    """

    def __init__(
        self,
        targets: Iterable[Target],
        transfer: Transfer,
        batch_size: int = 10,
    ):
        self.targets = list(targets)
        self.transfer = transfer
        self.batch_size = batch_size

    def targets_for(self, artifact: Artifact) -> list[Target]:
        return [t for t in self.targets if t.accepts(artifact)]

    def exclusions_for(
        self, target: Target, artifacts: Iterable[Artifact], output_dir: Path
    ) -> list[str]:
        """
        rsync exclude patterns for the artifacts a target does not accept.

        Each rejected file is listed by its exact path, anchored at the
        transfer root, with rsync wildcard characters escaped.
        """
        if target.printers is None:
            return []
        return [
            "/" + _escape_pattern(artifact.path.relative_to(output_dir).as_posix())
            for artifact in artifacts
            if not target.accepts(artifact)
        ]

    def destination(self, target: Target, artifact: Artifact, output_dir: Path) -> str:
        """Remote directory for an artifact: the target plus its relative directory."""
        rel_dir = artifact.path.parent.relative_to(output_dir).as_posix()
        base = target.address.rstrip("/")
        if rel_dir == ".":
            return f"{base}/"
        return f"{base}/{rel_dir}/"

    async def mirror_all(self, output_dir: Path, artifacts: Iterable[Artifact]) -> None:
        """Mirror the whole tree to every target, ``batch_size`` targets at a time."""
        artifacts = list(artifacts)
        for start in range(0, len(self.targets), self.batch_size):
            batch = self.targets[start:start + self.batch_size]
            await asyncio.gather(*(
                self._mirror_one(output_dir, target, artifacts) for target in batch
            ))

    async def distribute(self, artifacts: Iterable[Artifact], output_dir: Path) -> None:
        """Copy each artifact to every compatible target."""
        jobs = [
            self._copy_one(artifact, target, output_dir)
            for artifact in artifacts
            for target in self.targets_for(artifact)
        ]
        if jobs:
            await asyncio.gather(*jobs)

    async def _mirror_one(
        self, output_dir: Path, target: Target, artifacts: list[Artifact]
    ) -> None:
        excludes = self.exclusions_for(target, artifacts, output_dir)
        try:
            await self.transfer.mirror(output_dir, target.address, excludes)
        except TransferError as e:
            logger.error("Failed to re-sync %s: %s", target.address, e)
            return
        logger.info("Done re-syncing with %s", target.address)

    async def _copy_one(self, artifact: Artifact, target: Target, output_dir: Path) -> None:
        destination = self.destination(target, artifact, output_dir)
        try:
            await self.transfer.copy(artifact.path, destination)
        except TransferError as e:
            logger.error("Failed to upload %s to %s: %s", artifact.path, destination, e)


def _escape_pattern(path: str) -> str:
    return _WILDCARDS.sub(r"\\\1", path)
