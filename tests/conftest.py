"""
Shared fixtures: a throwaway project/profile tree and fake collaborators.
"""

import asyncio
import itertools
from pathlib import Path
from types import SimpleNamespace

import pytest

from autoslice.distribution import Distributor
from autoslice.engine import RegenerationEngine
from autoslice.models import Target
from autoslice.slicer import SliceError
from autoslice.transfer import TransferError


class FakeSlicer:
    """
    Stands in for the slicer executable.

    Writes a payload naming the project and profiles; with ``unique`` the
    payload also carries a call counter so every run produces new content.
    """

    def __init__(self, delay: float = 0.0, unique: bool = True):
        self.delay = delay
        self.unique = unique
        self.calls: list[tuple[Path, Path, list[Path]]] = []
        self.events: list[tuple[str, str]] = []
        self.fail: set[str] = set()
        self.active = 0
        self.max_active = 0
        self._counter = itertools.count()

    async def slice(self, project: Path, output: Path, profiles: list[Path]) -> None:
        self.calls.append((project, output, list(profiles)))
        self.events.append(("start", output.name))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if output.name in self.fail:
                raise SliceError("fake-slicer", ["-o", str(output)], "boom", 1)
            payload = f"{project.name}|{','.join(p.stem for p in profiles)}"
            if self.unique:
                payload += f"|{next(self._counter)}"
            output.write_text(payload)
        finally:
            self.active -= 1
            self.events.append(("end", output.name))

    @property
    def sliced_names(self) -> list[str]:
        return [output.name for _, output, _ in self.calls]


class FakeTransfer:
    """Records transfers; destinations starting with a failing address raise."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.mirrors: list[tuple[Path, str, list[str]]] = []
        self.copies: list[tuple[str, str]] = []
        self.failing: set[str] = set()
        self.active = 0
        self.max_active = 0

    async def mirror(self, source: Path, destination: str, excludes: list[str]) -> None:
        await self._transfer(destination)
        self.mirrors.append((source, destination, list(excludes)))

    async def copy(self, source: Path, destination: str) -> None:
        await self._transfer(destination)
        self.copies.append((source.name, destination))

    async def _transfer(self, destination: str) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if any(destination.startswith(address) for address in self.failing):
                raise TransferError("fake-rsync", [destination], "connection refused", 255)
        finally:
            self.active -= 1


def add_profile(profiles_dir: Path, category: str, name: str, content: str = "") -> Path:
    path = profiles_dir / category / f"{name}.ini"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content or f"# {name}\n")
    return path


def add_project(projects_dir: Path, rel: str) -> Path:
    path = projects_dir / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"PK\x03\x04 fake 3mf")
    return path


def gcode_names(output_dir: Path) -> set[str]:
    """Artifact paths relative to the output root."""
    return {
        p.relative_to(output_dir).as_posix()
        for p in output_dir.rglob("*.gcode")
    }


@pytest.fixture
def workspace(tmp_path):
    """Project root with box.3mf and a PrusaSlicer folder with empty categories."""
    projects = tmp_path / "projects"
    profiles = tmp_path / "PrusaSlicer"
    for category in ("printer", "filament", "print"):
        (profiles / category).mkdir(parents=True)
    add_project(projects, "box.3mf")
    return SimpleNamespace(
        root=tmp_path,
        projects=projects,
        profiles=profiles,
        output=projects / "gcode",
    )


@pytest.fixture
def catalog_workspace(workspace):
    """Printers mk3 and mk4, filament pla, print setting draft."""
    add_profile(workspace.profiles, "printer", "mk3")
    add_profile(workspace.profiles, "printer", "mk4")
    add_profile(workspace.profiles, "filament", "pla")
    add_profile(workspace.profiles, "print", "draft")
    return workspace


@pytest.fixture
def slicer():
    return FakeSlicer()


@pytest.fixture
def transfer():
    return FakeTransfer()


@pytest.fixture
def make_engine(catalog_workspace, slicer, transfer):
    """Factory for engines over the catalog workspace."""

    def _make(targets: list[Target] | None = None, **kwargs) -> RegenerationEngine:
        distributor = Distributor(targets or [], transfer)
        return RegenerationEngine(
            projects_dir=catalog_workspace.projects,
            profiles_dir=catalog_workspace.profiles,
            output_dir=kwargs.pop("output_dir", catalog_workspace.output),
            slicer=kwargs.pop("slicer", slicer),
            distributor=distributor,
            **kwargs,
        )

    return _make
