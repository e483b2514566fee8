from __future__ import annotations

import logging
import re
import shutil
import subprocess
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from .util import Recognized, ServiceState, Unrecognized

log = logging.getLogger(__name__)

RUNNING = 1
DOWN = 0

# First match wins.
STATUS_RULES: List[Tuple[Pattern[str], int]] = [
    (re.compile(r"run: (\w+): \(pid \d+\) \d+s"), RUNNING),
    (re.compile(r"down: (\w+): \d+s"), DOWN),
    (re.compile(r"run: (\w+): connected OK"), RUNNING),
]

class StatusCommandError(RuntimeError):
    """The status command could not be started or did not exit cleanly."""

    def __init__(self, message: str, returncode: Optional[int] = None, statuses: Optional[Dict[str, int]] = None):
        super().__init__(message)
        self.returncode = returncode
        self.statuses = dict(statuses or {})

def parse_status_line(line: str) -> ServiceState:
    for pattern, state in STATUS_RULES:
        m = pattern.search(line)
        if m:
            return Recognized(service=m.group(1), state=state)
    return Unrecognized(line=line)

def parse_status_output(lines) -> Dict[str, int]:
    statuses: Dict[str, int] = {}
    for line in lines:
        result = parse_status_line(line.rstrip("\r\n"))
        if isinstance(result, Recognized):
            # last line for a service wins
            statuses[result.service] = result.state
    return statuses

WRAPPERS = ("sudo", "env")
# sudo options that consume the next argument
SUDO_VALUE_OPTS = ("-u", "-g", "-h", "-p", "-C", "-D", "-r", "-t", "-U", "-T", "-c")

def wrapped_executables(command: Sequence[str]) -> List[str]:
    """Executables the command needs: the wrapper (sudo/env) and what it runs."""
    if not command:
        return []
    exes = [command[0]]
    wrapper = command[0].rsplit("/", 1)[-1]
    if wrapper not in WRAPPERS:
        return exes
    args = list(command[1:])
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--":
            i += 1
            break
        if arg.startswith("-"):
            i += 2 if wrapper == "sudo" and arg in SUDO_VALUE_OPTS else 1
            continue
        if wrapper == "env" and "=" in arg:
            i += 1
            continue
        break
    if i < len(args):
        exes.extend(wrapped_executables(args[i:]))
    return exes

def status_command_available(command: Sequence[str]) -> bool:
    exes = wrapped_executables(command)
    return bool(exes) and all(shutil.which(exe) is not None for exe in exes)

def collect_service_status(command: Sequence[str]) -> Dict[str, int]:
    """Run the status command and map service name -> 1 (running) / 0 (down).

    An empty mapping means the command ran and reported nothing we recognize.
    """
    cmd = list(command)
    log.info("%s:", " ".join(cmd))
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            errors="replace",
        )
    except OSError as e:
        raise StatusCommandError(f"Error running {' '.join(cmd)}: {e}") from e

    # leaving the with-block waits for the child
    with proc:
        statuses = parse_status_output(proc.stdout)
    if proc.returncode != 0:
        raise StatusCommandError(
            f"{' '.join(cmd)} exited with status {proc.returncode}",
            returncode=proc.returncode,
            statuses=statuses,
        )
    return statuses
