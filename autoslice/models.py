from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

# Placeholder for an empty permutation slot
NONE = "none"


class ProfileCategory(str, Enum):
    PRINTER = "printer"
    FILAMENT = "filament"
    PRINT = "print"


class EngineState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"


class ProfileCatalog(BaseModel):
    """
    Snapshot of the profiles available in a PrusaSlicer configuration folder.
    Never mutated; a fresh catalog is read for every pass.
    """

    root: Path
    printers: list[str] = Field(default_factory=list)
    filaments: list[str] = Field(default_factory=list)
    print_settings: list[str] = Field(default_factory=list)

    def names(self, category: ProfileCategory) -> list[str]:
        if category == ProfileCategory.PRINTER:
            return self.printers
        if category == ProfileCategory.FILAMENT:
            return self.filaments
        return self.print_settings

    def all_names(self) -> set[str]:
        return set(self.printers) | set(self.filaments) | set(self.print_settings)

    def profile_path(self, category: ProfileCategory, name: str) -> Path:
        return self.root / category.value / f"{name}.ini"

    def profile_files(self, permutation: Permutation) -> list[Path]:
        """The .ini files to load for a permutation, in printer/filament/print order."""
        files = []
        for category, name in zip(ProfileCategory, permutation.slots):
            if name != NONE:
                files.append(self.profile_path(category, name))
        return files


class Permutation(BaseModel):
    """One output variant of a project: a (printer, filament, print) triple."""

    model_config = ConfigDict(frozen=True)

    printer: str = NONE
    filament: str = NONE
    print_setting: str = NONE

    @property
    def slots(self) -> tuple[str, str, str]:
        return (self.printer, self.filament, self.print_setting)

    @property
    def is_vanilla(self) -> bool:
        return self.slots == (NONE, NONE, NONE)

    @property
    def tag(self) -> str:
        return "-".join(self.slots)

    def mentions(self, name: str) -> bool:
        return name != NONE and name in self.slots


VANILLA = Permutation()


class Artifact(BaseModel):
    """
    The generated output of one (project, permutation) pair.

    ``project`` is the POSIX path of the source file relative to the
    project root; ``path`` is where the output lives in the artifact tree.
    """

    model_config = ConfigDict(frozen=True)

    project: str
    permutation: Permutation
    path: Path

    @property
    def key(self) -> tuple[str, Permutation]:
        return (self.project, self.permutation)


class Target(BaseModel):
    """A remote rsync destination, optionally limited to some printers."""

    model_config = ConfigDict(frozen=True)

    address: str
    printers: frozenset[str] | None = None

    def accepts(self, artifact: Artifact) -> bool:
        if self.printers is None:
            return True
        printer = artifact.permutation.printer
        return printer == NONE or printer in self.printers


# --- Regeneration requests ---


class RegenerateAll(BaseModel):
    model_config = ConfigDict(frozen=True)

    def describe(self) -> str:
        return "regenerate all"


class RegenerateProject(BaseModel):
    model_config = ConfigDict(frozen=True)

    project: str

    def describe(self) -> str:
        return f"regenerate {self.project}"


class RegenerateForDirtyProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    profile: str

    def describe(self) -> str:
        return f"regenerate for profile {self.profile}"


class SweepProject(BaseModel):
    model_config = ConfigDict(frozen=True)

    project: str

    def describe(self) -> str:
        return f"sweep {self.project}"


RegenerationRequest = Union[
    RegenerateAll, RegenerateProject, RegenerateForDirtyProfile, SweepProject
]


class PassReport(BaseModel):
    """Result of executing one regeneration request."""

    request: str
    sliced: list[Artifact] = Field(default_factory=list)
    failed: list[Artifact] = Field(default_factory=list)
    removed: list[Artifact] = Field(default_factory=list)
    distributed: bool = False
