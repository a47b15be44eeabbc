from __future__ import annotations

import logging
from pathlib import Path

from orthomatrix.runners.base import ToolRunner
from orthomatrix.utils.subprocess import CommandResult


class MuscleRunner(ToolRunner):
    """Wrapper around MUSCLE (v3 syntax) profile-profile alignment."""

    def __init__(
        self,
        executable: str = "muscle",
        *,
        timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(executable, timeout=timeout, logger=logger)

    def profile(self, *, in1: Path, in2: Path, dry_run: bool = False) -> CommandResult:
        return self.run(["-profile", "-in1", in1, "-in2", in2, "-quiet"], dry_run=dry_run)
