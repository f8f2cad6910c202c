"""Run the external static site generator as a subprocess."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence, Tuple

from ..logging import get_logger

CommandRunner = Callable[[Sequence[str], Path], Tuple[int, str]]


class GeneratorError(RuntimeError):
    """Raised when the generator cannot be started at all."""


@dataclass
class GeneratorResult:
    """Pass/fail outcome of one generator run."""

    ok: bool
    message: str = ""


class Generator(Protocol):
    def render(self, work_dir: Path, output_dir: Path, path_prefix: str) -> GeneratorResult:
        ...


class CommandGenerator:
    """Renders a site by invoking a configured command line.

    Each argument may reference ``{input}``, ``{output}`` and ``{path_prefix}``.
    """

    def __init__(self, command: Sequence[str], runner: CommandRunner | None = None) -> None:
        if not command:
            raise ValueError("Generator command must not be empty")
        self.command = tuple(command)
        self._runner = runner or self._default_runner
        self.logger = get_logger("generator")

    def render(self, work_dir: Path, output_dir: Path, path_prefix: str) -> GeneratorResult:
        args = [
            part.format(input=str(work_dir), output=str(output_dir), path_prefix=path_prefix)
            for part in self.command
        ]
        output_dir.mkdir(parents=True, exist_ok=True)
        self.logger.debug("Running generator: %s", " ".join(args))
        returncode, output = self._runner(args, work_dir)
        if returncode != 0:
            tail = output.strip().splitlines()[-5:]
            detail = "\n".join(tail) if tail else "no output"
            return GeneratorResult(ok=False, message=f"exit code {returncode}: {detail}")
        return GeneratorResult(ok=True, message=output.strip())

    @staticmethod
    def _default_runner(args: Sequence[str], cwd: Path) -> Tuple[int, str]:
        try:
            completed = subprocess.run(
                list(args),
                cwd=cwd,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:  # pragma: no cover - depends on environment
            raise GeneratorError(
                f"Unable to locate '{args[0]}'. Install the site generator or set generator.command."
            ) from exc
        return completed.returncode, (completed.stdout or "") + (completed.stderr or "")


__all__ = ["CommandGenerator", "Generator", "GeneratorError", "GeneratorResult"]
