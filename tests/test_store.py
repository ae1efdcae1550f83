from pathlib import Path

from autoslice.index import ArtifactIndex
from autoslice.models import VANILLA, Artifact, Permutation
from autoslice.planner import artifact_path
from autoslice.store import ArtifactStore


def _artifact(output: Path, project: str, permutation: Permutation = VANILLA) -> Artifact:
    return Artifact(
        project=project,
        permutation=permutation,
        path=artifact_path(project, permutation, output),
    )


def _write(store: ArtifactStore, artifact: Artifact) -> Artifact:
    store.prepare(artifact)
    artifact.path.write_text("G28\n")
    store.record(artifact)
    return artifact


MK3 = Permutation(printer="mk3", filament="pla", print_setting="draft")
MK4 = Permutation(printer="mk4", filament="pla", print_setting="draft")


def test_index_lookups_by_profile_and_project():
    index = ArtifactIndex()
    out = Path("/out")
    vanilla = _artifact(out, "box.3mf")
    mk3 = _artifact(out, "box.3mf", MK3)
    lid = _artifact(out, "lid.3mf", MK4)
    for artifact in (vanilla, mk3, lid):
        index.add(artifact)

    assert index.for_profile("mk3") == {mk3}
    assert index.for_profile("pla") == {mk3, lid}
    assert index.for_profile("none") == set()
    assert index.for_project("box.3mf") == {vanilla, mk3}
    assert len(index) == 3

    index.discard(mk3)
    assert index.for_profile("mk3") == set()
    assert index.for_profile("pla") == {lid}
    assert mk3 not in index


def test_index_replaces_same_identity():
    index = ArtifactIndex()
    index.add(_artifact(Path("/old"), "box.3mf", MK3))
    moved = _artifact(Path("/new"), "box.3mf", MK3)
    index.add(moved)

    assert list(index) == [moved]
    assert index.for_profile("mk3") == {moved}


def test_ensure_root_reports_prior_existence(tmp_path):
    store = ArtifactStore(tmp_path / "gcode")
    assert store.ensure_root() is False
    assert store.ensure_root() is True


def test_wipe_clears_tree_and_index(tmp_path):
    store = ArtifactStore(tmp_path / "gcode")
    _write(store, _artifact(store.root, "a/box.3mf", MK3))

    store.wipe()

    assert store.root.is_dir()
    assert list(store.root.iterdir()) == []
    assert len(store.index) == 0


def test_remove_for_profile_deletes_files(tmp_path):
    store = ArtifactStore(tmp_path / "gcode")
    vanilla = _write(store, _artifact(store.root, "box.3mf"))
    mk3 = _write(store, _artifact(store.root, "box.3mf", MK3))
    mk4 = _write(store, _artifact(store.root, "box.3mf", MK4))

    removed = store.remove_for_profile("mk3")

    assert removed == [mk3]
    assert not mk3.path.exists()
    assert vanilla.path.exists() and mk4.path.exists()
    assert store.artifacts() == [vanilla, mk4]


def test_remove_for_project_sweeps_every_permutation(tmp_path):
    store = ArtifactStore(tmp_path / "gcode")
    for permutation in (VANILLA, MK3, MK4):
        _write(store, _artifact(store.root, "sub/box.3mf", permutation))
    other = _write(store, _artifact(store.root, "sub/box_lid.3mf", MK3))

    removed = store.remove_for_project("sub/box.3mf")

    assert len(removed) == 3
    assert [p.name for p in (store.root / "sub").iterdir()] == [other.path.name]


def test_remove_tolerates_missing_file(tmp_path):
    store = ArtifactStore(tmp_path / "gcode")
    artifact = _write(store, _artifact(store.root, "box.3mf", MK3))
    artifact.path.unlink()

    assert store.remove_for_profile("mk3") == [artifact]
    assert len(store.index) == 0


def test_adopt_indexes_expected_and_deletes_orphans(tmp_path):
    store = ArtifactStore(tmp_path / "gcode")
    expected = [_artifact(store.root, "box.3mf"), _artifact(store.root, "box.3mf", MK3)]
    expected[0].path.parent.mkdir(parents=True)
    expected[0].path.write_text("kept")
    orphan = store.root / "gone" / "gone_mk2-abs-fine.gcode"
    orphan.parent.mkdir()
    orphan.write_text("orphan")
    (store.root / "notes.txt").write_text("not gcode")

    orphans = store.adopt(expected)

    assert orphans == [orphan]
    assert not (store.root / "gone").exists()
    assert (store.root / "notes.txt").exists()
    assert store.artifacts() == [expected[0]]


def test_remove_unplanned_keeps_planned_permutations(tmp_path):
    store = ArtifactStore(tmp_path / "gcode")
    vanilla = _write(store, _artifact(store.root, "box.3mf"))
    placeholder = _write(
        store, _artifact(store.root, "box.3mf", Permutation(filament="pla", print_setting="draft"))
    )
    other = _write(store, _artifact(store.root, "lid.3mf", MK3))

    removed = store.remove_unplanned("box.3mf", [vanilla, _artifact(store.root, "box.3mf", MK3)])

    assert removed == [placeholder]
    assert not placeholder.path.exists()
    assert store.artifacts() == [vanilla, other]
