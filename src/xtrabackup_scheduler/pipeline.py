"""
Ordered execution of backup and restore steps.

A procedure is a list of stages. Stages run strictly one after the other; the
first failing stage stops the procedure and every later stage is skipped.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from loguru import logger

from xtrabackup_scheduler.errors import BackupError


@dataclass(frozen=True)
class Stage:
    """
    One step of a procedure.
    """
    name: str
    action: Callable[[], Any]


@dataclass
class StageResult:
    """
    Outcome of one stage.
    """
    name: str
    ok: bool
    error: Optional[Exception] = None
    seconds: float = 0.0


@dataclass
class PipelineResult:
    """
    Outcome of a procedure. output is set by the caller on success.
    """
    name: str
    stages: List[StageResult] = field(default_factory=list)
    output: Any = None

    @property
    def ok(self) -> bool:
        return all(x.ok for x in self.stages)

    @property
    def failed_stage(self) -> Optional[StageResult]:
        return next((x for x in self.stages if not x.ok), None)

    @property
    def error(self) -> Optional[Exception]:
        failed = self.failed_stage
        return failed.error if failed else None


def run_pipeline(name: str, stages: List[Stage]) -> PipelineResult:
    """
    Run the stages in order.
    BackupError and OSError mark the stage as failed. Anything else is a bug and propagates.
    :param name: name of the procedure for the log
    :param stages: stages in execution order
    :return: result with one StageResult per executed stage
    """
    result = PipelineResult(name=name)
    for stage in stages:
        logger.debug(f'{name}: {stage.name}')
        start = time.monotonic()
        try:
            stage.action()
        except (BackupError, OSError) as e:
            result.stages.append(
                StageResult(stage.name, ok=False, error=e, seconds=time.monotonic() - start))
            logger.error(f'{name} failed at stage "{stage.name}": {e}')
            break
        result.stages.append(
            StageResult(stage.name, ok=True, seconds=time.monotonic() - start))
    return result
