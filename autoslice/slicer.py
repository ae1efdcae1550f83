"""Slicer invocation: one call per (project, permutation)."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from .process import CommandError, run_command


class SliceError(CommandError):
    """Raised when the slicer fails to produce an artifact."""


class Slicer(Protocol):
    """Protocol for anything that turns a project plus profiles into gcode."""

    async def slice(self, project: Path, output: Path, profiles: list[Path]) -> None: ...


class PrusaSlicer:
    """Slices through the PrusaSlicer command line."""

    def __init__(self, command: str = "prusa-slicer") -> None:
        self.command = command

    def build_args(self, project: Path, output: Path, profiles: list[Path]) -> list[str]:
        args = ["-o", str(output), "-g", str(project)]
        for profile in profiles:
            args.extend(["--load", str(profile)])
        return args

    async def slice(self, project: Path, output: Path, profiles: list[Path]) -> None:
        args = self.build_args(project, output, profiles)
        try:
            await run_command(self.command, args)
        except CommandError as e:
            raise SliceError(self.command, args, e.message, e.returncode) from e
