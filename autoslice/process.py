"""
Subprocess execution for the external slicer and transfer tools.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when an external command fails or cannot be started."""

    def __init__(self, cmd: str, args: list[str], message: str, returncode: int | None = None):
        super().__init__(f"{cmd} {' '.join(args)}: {message}")
        self.cmd = cmd
        self.args_list = args
        self.message = message
        self.returncode = returncode


async def run_command(cmd: str, args: list[str]) -> str:
    """
    Run a command to completion and return its combined output.

    stdout and stderr are merged and logged. A non-zero exit status or a
    missing executable raises CommandError; there is no timeout.
    """
    logger.info("%s %s", cmd, " ".join(args))
    try:
        proc = await asyncio.create_subprocess_exec(
            cmd,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        raise CommandError(cmd, args, str(e)) from e

    stdout, _ = await proc.communicate()
    output = stdout.decode("utf-8", errors="replace").strip() if stdout else ""

    if proc.returncode != 0:
        raise CommandError(
            cmd, args, f"exited with status {proc.returncode}: {output}", proc.returncode
        )
    if output:
        logger.info("%s", output)
    return output
