"""
Permutation planning: which artifacts must exist for a project.
"""

from pathlib import Path, PurePosixPath

from .models import NONE, VANILLA, Artifact, Permutation, ProfileCatalog

ARTIFACT_SUFFIX = ".gcode"


def plan(project: str, catalog: ProfileCatalog) -> list[Permutation]:
    """
    Enumerate every permutation a project needs, vanilla first.

    The explicit permutations are the cross-product of printers × filaments ×
    print settings in catalog order. An empty category contributes a single
    ``none`` entry so an axis never zeroes out the product.
    """
    permutations = [VANILLA]
    for printer in catalog.printers or [NONE]:
        for filament in catalog.filaments or [NONE]:
            for print_setting in catalog.print_settings or [NONE]:
                permutation = Permutation(
                    printer=printer, filament=filament, print_setting=print_setting
                )
                if permutation.is_vanilla:
                    continue
                permutations.append(permutation)
    return permutations


def artifact_name(project: str, permutation: Permutation) -> str:
    stem = PurePosixPath(project).stem
    if permutation.is_vanilla:
        return f"{stem}{ARTIFACT_SUFFIX}"
    return f"{stem}_{permutation.tag}{ARTIFACT_SUFFIX}"


def artifact_path(project: str, permutation: Permutation, output_dir: Path) -> Path:
    """Output location of one permutation, mirroring the project's directory."""
    parent = PurePosixPath(project).parent
    return Path(output_dir).joinpath(*parent.parts) / artifact_name(project, permutation)


def plan_artifacts(
    project: str,
    catalog: ProfileCatalog,
    output_dir: Path,
    only: str | None = None,
) -> list[Artifact]:
    """Planned artifacts for a project; ``only`` keeps those mentioning one profile."""
    artifacts = []
    for permutation in plan(project, catalog):
        if only is not None and not permutation.mentions(only):
            continue
        artifacts.append(Artifact(
            project=project,
            permutation=permutation,
            path=artifact_path(project, permutation, output_dir),
        ))
    return artifacts
