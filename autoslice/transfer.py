"""Transfer of artifacts to remote targets."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from .process import CommandError, run_command


class TransferError(CommandError):
    """Raised when copying artifacts to a target fails."""


class Transfer(Protocol):
    """Protocol for bulk mirroring and single-file copies."""

    async def mirror(self, source: Path, destination: str, excludes: list[str]) -> None: ...
    async def copy(self, source: Path, destination: str) -> None: ...


class Rsync:
    """rsync-backed transfer. Targets are anything rsync accepts (host:/dir, /dir)."""

    def __init__(self, command: str = "rsync") -> None:
        self.command = command

    def mirror_args(self, source: Path, destination: str, excludes: list[str]) -> list[str]:
        args = ["-r", "-t", "--delete"]
        args.extend(f"--exclude={pattern}" for pattern in excludes)
        # Trailing slash: sync the contents, not the directory itself
        args.extend([f"{str(source).rstrip('/')}/", destination])
        return args

    def copy_args(self, source: Path, destination: str) -> list[str]:
        return ["-t", str(source), destination]

    async def mirror(self, source: Path, destination: str, excludes: list[str]) -> None:
        await self._run(self.mirror_args(source, destination, excludes))

    async def copy(self, source: Path, destination: str) -> None:
        await self._run(self.copy_args(source, destination))

    async def _run(self, args: list[str]) -> None:
        try:
            await run_command(self.command, args)
        except CommandError as e:
            raise TransferError(self.command, args, e.message, e.returncode) from e
