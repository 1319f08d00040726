from __future__ import annotations
import os
import signal
import subprocess
from dataclasses import dataclass
from typing import Optional

from ..errors import ProcessingError

_POSIX = os.name != "nt"


@dataclass
class ExecResult:
    command: str
    returncode: int
    stdout: str
    stderr: str

    def raise_for_status(self) -> None:
        if self.returncode != 0:
            msg = (self.stderr or self.stdout).strip()
            raise ProcessingError(msg or f"Command exited with code {self.returncode}: {self.command}")


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        if _POSIX:
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


def run_command(cmd: str, timeout: Optional[float] = None) -> ExecResult:
    """Run ``cmd`` through bash in its own session.

    On timeout the whole process group is killed, so children started by the
    command cannot outlive the job, and ProcessingError is raised.
    """
    proc = subprocess.Popen(
        cmd,
        shell=True,
        executable="/bin/bash" if _POSIX else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        start_new_session=_POSIX,
    )
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        _kill_group(proc)
        proc.communicate()
        raise ProcessingError(f"Command timed out after {timeout}s: {cmd}") from e
    return ExecResult(command=cmd, returncode=proc.returncode, stdout=stdout or "", stderr=stderr or "")
