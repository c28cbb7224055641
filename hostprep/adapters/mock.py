"""
Mock shell adapter — test double for every command-running operation.

Used by ``--mock`` runs and the test suite to exercise whole step lists
without touching the system. Succeeds by default; failures, canned
output and side-effect handlers are configured per command prefix.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable, Iterable

from hostprep.adapters.base import Receipt
from hostprep.adapters.shell.command import ShellCommandAdapter

Handler = Callable[[list[str]], Receipt]


class MockShellAdapter(ShellCommandAdapter):
    """Records commands instead of running them.

    Args:
        programs: Programs ``which`` reports as installed. None means
            every program is installed.
        root: What ``is_root`` reports.
        default_output: stdout returned for unmatched commands.

    Prefixes are matched against the command line with any ``sudo``
    prefix removed, e.g. ``"apt install"`` or ``"gh auth status"``.
    """

    def __init__(
        self,
        programs: Iterable[str] | None = None,
        root: bool = False,
        default_output: str = "",
    ):
        super().__init__(dry_run=False)
        self._programs = set(programs) if programs is not None else None
        self._root = root
        self._default_output = default_output
        self._responses: list[tuple[str, Handler]] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def calls(self) -> list[list[str]]:
        """Every argv received, sudo prefix included."""
        return self.history

    @property
    def commands(self) -> list[str]:
        """Every command line received, sudo prefix removed."""
        return [shlex.join(_strip_sudo(argv)) for argv in self.history]

    @property
    def call_count(self) -> int:
        return len(self.history)

    def which(self, program: str) -> str | None:
        if self._programs is None or program in self._programs:
            return f"/usr/bin/{program}"
        return None

    def is_root(self) -> bool:
        return self._root

    def add_program(self, program: str) -> None:
        if self._programs is not None:
            self._programs.add(program)

    def set_handler(self, prefix: str, handler: Handler) -> None:
        """Route matching commands to ``handler`` (latest registration wins)."""
        self._responses.insert(0, (prefix, handler))

    def set_failure(
        self, prefix: str, error: str = "Mock failure", return_code: int = 1
    ) -> None:
        def _fail(argv: list[str]) -> Receipt:
            return Receipt.failure(
                adapter=self.name,
                operation=shlex.join(argv),
                error=error,
                return_code=return_code,
            )

        self.set_handler(prefix, _fail)

    def set_output(self, prefix: str, output: str, return_code: int = 0) -> None:
        def _out(argv: list[str]) -> Receipt:
            if return_code == 0:
                return Receipt.success(
                    adapter=self.name,
                    operation=shlex.join(argv),
                    output=output,
                    return_code=0,
                )
            return Receipt.failure(
                adapter=self.name,
                operation=shlex.join(argv),
                error=f"Command exited with code {return_code}",
                output=output,
                return_code=return_code,
            )

        self.set_handler(prefix, _out)

    def ran(self, prefix: str) -> bool:
        """Whether any received command starts with ``prefix``."""
        return any(cmd.startswith(prefix) for cmd in self.commands)

    def reset(self) -> None:
        self.history.clear()
        self._responses.clear()

    def _execute(self, argv: list[str], **kwargs) -> Receipt:
        line = shlex.join(_strip_sudo(argv))
        for prefix, handler in self._responses:
            if line.startswith(prefix):
                return handler(argv)
        return Receipt.success(
            adapter=self.name,
            operation=shlex.join(argv),
            output=self._default_output,
            return_code=0,
            metadata={"mock": True},
        )


def _strip_sudo(argv: list[str]) -> list[str]:
    return argv[1:] if argv and argv[0] == "sudo" else argv
