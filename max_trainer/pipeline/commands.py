from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

# Shell convention for "command not found".
COMMAND_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str | None = None
    stderr: str | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return " ".join(self.args)

    def tail(self, n_lines: int = 20) -> str:
        """Last lines of captured output, stderr after stdout."""
        text = "\n".join(part for part in (self.stdout, self.stderr) if part)
        return "\n".join(text.splitlines()[-n_lines:])


def run_command(
    cmd: Sequence[str],
    *,
    cwd: Path | None = None,
    capture_output: bool = True,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a command to completion and return its exit status.

    With capture_output=False the child inherits stdout/stderr, which keeps
    long-running training output visible to the operator.
    """
    args = tuple(str(a) for a in cmd)
    logger.debug("Running %s (cwd=%s)", " ".join(args), cwd)
    try:
        proc = subprocess.run(
            args,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            capture_output=capture_output,
            text=capture_output,
            errors="replace" if capture_output else None,
            check=False,
        )
    except OSError as exc:
        logger.debug("Could not start %s: %s", args[0], exc)
        return CommandResult(args=args, returncode=COMMAND_NOT_FOUND, stderr=str(exc))

    return CommandResult(args=args, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
