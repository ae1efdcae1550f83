"""
autoslice — Incremental slicing of 3D-print projects

Turns a folder of .3mf projects into one gcode file per printer/filament/print
profile permutation, keeps the output consistent as projects or profiles
change, and uploads the affected files to remote targets.
"""

from .models import (
    NONE,
    VANILLA,
    ProfileCategory,
    ProfileCatalog,
    Permutation,
    Artifact,
    Target,
    RegenerateAll,
    RegenerateProject,
    RegenerateForDirtyProfile,
    SweepProject,
    PassReport,
    EngineState,
)
from .catalog import read_catalog, discover_projects
from .planner import plan, plan_artifacts, artifact_path
from .index import ArtifactIndex
from .store import ArtifactStore
from .distribution import Distributor
from .engine import RegenerationEngine
from .config import Settings, ConfigurationError, load_settings, parse_target, parse_targets
from .process import CommandError
from .slicer import PrusaSlicer, SliceError
from .transfer import Rsync, TransferError

__all__ = [
    # Enums & constants
    "NONE",
    "VANILLA",
    "ProfileCategory",
    "EngineState",
    # Models
    "ProfileCatalog",
    "Permutation",
    "Artifact",
    "Target",
    "PassReport",
    # Requests
    "RegenerateAll",
    "RegenerateProject",
    "RegenerateForDirtyProfile",
    "SweepProject",
    # Catalog & planning
    "read_catalog",
    "discover_projects",
    "plan",
    "plan_artifacts",
    "artifact_path",
    # Store & engine
    "ArtifactIndex",
    "ArtifactStore",
    "Distributor",
    "RegenerationEngine",
    # Configuration
    "Settings",
    "load_settings",
    "parse_target",
    "parse_targets",
    # Collaborators & errors
    "PrusaSlicer",
    "Rsync",
    "ConfigurationError",
    "CommandError",
    "SliceError",
    "TransferError",
]
