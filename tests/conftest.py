from __future__ import annotations

from typing import List

import pytest

from ghostsite.lifecycle import LifecycleCoordinator
from ghostsite.metrics import BuildMetrics


class ExitRecorder:
    """Stands in for process termination at the end of the shutdown sequence."""

    def __init__(self) -> None:
        self.codes: List[int] = []

    def __call__(self, code: int) -> None:
        self.codes.append(code)


@pytest.fixture
def exit_recorder() -> ExitRecorder:
    return ExitRecorder()


@pytest.fixture
def lifecycle(exit_recorder: ExitRecorder) -> LifecycleCoordinator:
    """Coordinator whose shutdown records the exit status instead of exiting."""
    return LifecycleCoordinator(exit_func=exit_recorder)


@pytest.fixture
def build_metrics() -> BuildMetrics:
    return BuildMetrics()
