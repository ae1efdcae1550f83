"""
Profile and project discovery.

Reads the printer/filament/print profiles available in a PrusaSlicer
configuration folder and enumerates the project files under a project root.
"""

import logging
from pathlib import Path

from .models import ProfileCatalog, ProfileCategory

logger = logging.getLogger(__name__)

PROFILE_SUFFIX = ".ini"
PROJECT_SUFFIX = ".3mf"


def _list_profiles(category_dir: Path) -> list[str]:
    if not category_dir.is_dir():
        logger.debug("Profile directory %s does not exist", category_dir)
        return []
    return sorted(
        p.stem for p in category_dir.iterdir()
        if p.is_file() and p.suffix == PROFILE_SUFFIX
    )


def read_catalog(profiles_dir: Path) -> ProfileCatalog:
    """Snapshot the profiles currently on disk."""
    profiles_dir = Path(profiles_dir)
    return ProfileCatalog(
        root=profiles_dir,
        printers=_list_profiles(profiles_dir / ProfileCategory.PRINTER.value),
        filaments=_list_profiles(profiles_dir / ProfileCategory.FILAMENT.value),
        print_settings=_list_profiles(profiles_dir / ProfileCategory.PRINT.value),
    )


def classify_profile(
    profiles_dir: Path, path: Path
) -> tuple[ProfileCategory, str] | None:
    """Map a changed file to (category, profile name), or None if it is not a profile."""
    path = Path(path)
    if path.suffix != PROFILE_SUFFIX:
        return None
    try:
        rel = path.relative_to(profiles_dir)
    except ValueError:
        return None
    if len(rel.parts) < 2:
        return None
    try:
        category = ProfileCategory(rel.parts[0])
    except ValueError:
        return None
    return category, path.stem


def project_id(projects_dir: Path, path: Path) -> str | None:
    """Project identifier (POSIX path relative to the root) for a file, if it is one."""
    path = Path(path)
    if path.suffix != PROJECT_SUFFIX:
        return None
    try:
        return path.relative_to(projects_dir).as_posix()
    except ValueError:
        return None


def discover_projects(projects_dir: Path, output_dir: Path | None = None) -> list[str]:
    """Every project file under the root, sorted, skipping the output tree."""
    projects_dir = Path(projects_dir)
    projects = []
    for path in projects_dir.rglob(f"*{PROJECT_SUFFIX}"):
        if not path.is_file():
            continue
        if output_dir is not None and path.is_relative_to(output_dir):
            continue
        projects.append(path.relative_to(projects_dir).as_posix())
    return sorted(projects)
