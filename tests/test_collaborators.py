import sys
from pathlib import Path

import pytest

from autoslice.process import CommandError, run_command
from autoslice.slicer import PrusaSlicer, SliceError
from autoslice.transfer import Rsync, TransferError


def test_prusa_slicer_args():
    slicer = PrusaSlicer("prusa-slicer-console")
    args = slicer.build_args(
        Path("/p/box.3mf"),
        Path("/p/gcode/box_mk3-pla-draft.gcode"),
        [Path("/c/printer/mk3.ini"), Path("/c/filament/pla.ini"), Path("/c/print/draft.ini")],
    )
    assert args == [
        "-o", "/p/gcode/box_mk3-pla-draft.gcode",
        "-g", "/p/box.3mf",
        "--load", "/c/printer/mk3.ini",
        "--load", "/c/filament/pla.ini",
        "--load", "/c/print/draft.ini",
    ]


def test_prusa_slicer_vanilla_args():
    args = PrusaSlicer().build_args(Path("/p/box.3mf"), Path("/p/gcode/box.gcode"), [])
    assert args == ["-o", "/p/gcode/box.gcode", "-g", "/p/box.3mf"]


def test_rsync_mirror_args():
    args = Rsync().mirror_args(Path("/p/gcode"), "pi@host:/watched", ["*_mk4-*-*.gcode"])
    assert args == [
        "-r", "-t", "--delete",
        "--exclude=*_mk4-*-*.gcode",
        "/p/gcode/",
        "pi@host:/watched",
    ]


def test_rsync_copy_args():
    args = Rsync().copy_args(Path("/p/gcode/sub/box.gcode"), "pi@host:/watched/sub/")
    assert args == ["-t", "/p/gcode/sub/box.gcode", "pi@host:/watched/sub/"]


@pytest.mark.asyncio
async def test_run_command_returns_combined_output():
    output = await run_command(
        sys.executable,
        ["-c", "import sys; print('out'); print('err', file=sys.stderr)"],
    )
    assert "out" in output
    assert "err" in output


@pytest.mark.asyncio
async def test_run_command_nonzero_exit():
    with pytest.raises(CommandError) as exc_info:
        await run_command(sys.executable, ["-c", "import sys; print('nope'); sys.exit(3)"])
    assert exc_info.value.returncode == 3
    assert "nope" in exc_info.value.message


@pytest.mark.asyncio
async def test_run_command_missing_executable(tmp_path):
    with pytest.raises(CommandError) as exc_info:
        await run_command(str(tmp_path / "no-such-tool"), ["--help"])
    assert exc_info.value.returncode is None


@pytest.mark.asyncio
async def test_slicer_failure_raises_slice_error(tmp_path):
    slicer = PrusaSlicer(str(tmp_path / "no-such-slicer"))
    with pytest.raises(SliceError) as exc_info:
        await slicer.slice(tmp_path / "box.3mf", tmp_path / "box.gcode", [])
    assert exc_info.value.cmd == slicer.command
    assert exc_info.value.args_list[:2] == ["-o", str(tmp_path / "box.gcode")]


@pytest.mark.asyncio
async def test_rsync_failure_raises_transfer_error(tmp_path):
    rsync = Rsync(sys.executable)
    # The interpreter rejects rsync's flags and exits non-zero
    with pytest.raises(TransferError) as exc_info:
        await rsync.mirror(tmp_path, "pi@host:/watched", [])
    assert exc_info.value.returncode not in (None, 0)
