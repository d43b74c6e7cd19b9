from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass

from readiness_controller.probes.base import Prober

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0


@dataclass
class ExecProber(Prober):
    """Run a command line; healthy iff it exits with status 0."""

    command: str
    timeout_s: float = DEFAULT_TIMEOUT_S

    kind = "exec"

    def argv(self) -> list[str]:
        try:
            return shlex.split(self.command)
        except ValueError:
            return []

    def check(self) -> bool:
        argv = self.argv()
        if not argv:
            return False
        try:
            cp = subprocess.run(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=self.timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.info("[exec] command timed out after %ss: %s", self.timeout_s, self.command)
            return False
        except OSError as exc:
            logger.info("[exec] command failed to start: %s", exc)
            return False
        if cp.returncode != 0:
            logger.info("[exec] command failed: exit status %s", cp.returncode)
            return False
        return True
