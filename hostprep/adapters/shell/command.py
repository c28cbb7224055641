"""
Shell command adapter — the SINGLE PLACE where subprocess.run is called.

Every package install, service toggle and git clone goes through
``ShellCommandAdapter.run``. Privilege escalation, dry-run and error
capture are centralised here.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from collections.abc import Sequence

from hostprep.adapters.base import Adapter, Receipt

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Run external commands and capture the outcome as a Receipt.

    Args:
        dry_run: Log every command instead of running it. Probes
            (``which``, ``is_root``) still look at the real system.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self._history: list[list[str]] = []

    @property
    def name(self) -> str:
        return "shell"

    @property
    def history(self) -> list[list[str]]:
        """Every argv passed to ``run`` (after the sudo prefix), in order."""
        return self._history

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def which(self, program: str) -> str | None:
        """Absolute path of ``program`` on PATH, or None."""
        return shutil.which(program)

    def has(self, program: str) -> bool:
        return self.which(program) is not None

    def is_root(self) -> bool:
        return os.geteuid() == 0

    def run(
        self,
        cmd: Sequence[str],
        *,
        sudo: bool = False,
        interactive: bool = False,
        input_text: str | None = None,
        timeout: int | None = None,
        cwd: str | None = None,
        env_overrides: dict[str, str] | None = None,
    ) -> Receipt:
        """Run ``cmd`` and return a receipt. Never raises.

        Args:
            cmd: argv list. Never a shell string.
            sudo: Prefix with ``sudo`` unless already root.
            interactive: Inherit the terminal (prompts such as
                ``gh auth login`` or a sudo password); output is not captured.
            input_text: Data written to stdin (captured mode only).
            timeout: Seconds before the command is killed.
            cwd: Working directory.
            env_overrides: Extra environment variables.
        """
        argv = [str(part) for part in cmd]
        if sudo and not self.is_root():
            argv = ["sudo", *argv]
        self._history.append(argv)

        if self.dry_run:
            logger.info("[dry-run] %s", shlex.join(argv))
            return Receipt.success(
                adapter=self.name,
                operation=shlex.join(argv),
                output="",
                dry_run=True,
            )

        return self._execute(
            argv,
            interactive=interactive,
            input_text=input_text,
            timeout=timeout,
            cwd=cwd,
            env_overrides=env_overrides,
        )

    def run_script(self, script: str, **kwargs) -> Receipt:
        """Run a pipeline through ``sh -c`` (installers fetched with curl)."""
        return self.run(["sh", "-c", script], **kwargs)

    def _execute(
        self,
        argv: list[str],
        *,
        interactive: bool,
        input_text: str | None,
        timeout: int | None,
        cwd: str | None,
        env_overrides: dict[str, str] | None,
    ) -> Receipt:
        operation = shlex.join(argv)
        env = None
        if env_overrides:
            env = os.environ.copy()
            env.update(env_overrides)

        logger.debug("Executing: %s (cwd=%s)", operation, cwd)
        start = time.monotonic()

        try:
            if interactive:
                result = subprocess.run(argv, cwd=cwd, env=env, timeout=timeout)
                stdout, stderr = "", ""
            else:
                result = subprocess.run(
                    argv,
                    cwd=cwd,
                    env=env,
                    timeout=timeout,
                    input=input_text,
                    capture_output=True,
                    text=True,
                )
                stdout, stderr = result.stdout or "", result.stderr or ""
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Command timed out after {timeout}s",
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Command not found: {argv[0]}",
                return_code=127,
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Command execution error: {e}",
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                operation=operation,
                output=stdout,
                return_code=0,
                duration_ms=elapsed_ms,
                metadata={"stderr": stderr.strip()},
            )

        return Receipt.failure(
            adapter=self.name,
            operation=operation,
            error=stderr.strip() or f"Command exited with code {result.returncode}",
            output=stdout,
            return_code=result.returncode,
            duration_ms=elapsed_ms,
        )
