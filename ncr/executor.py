from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from . import db
from .errors import ManagerUnreachable, StepFailed
from .fs_ops import LocalFilesystem
from .planner import Action, Phase, ReconciliationPlan, Step


@dataclass(frozen=True)
class StepResult:
    step: Step
    ok: bool
    error: str | None = None


@dataclass
class ExecutionResult:
    results: list[StepResult] = field(default_factory=list)
    cancel: bool = False

    @property
    def failed(self) -> list[StepResult]:
        return [r for r in self.results if not r.ok]

    @property
    def fully_applied(self) -> bool:
        return not self.failed


class PlanExecutor:
    """Runs a plan phase by phase, never stopping at a failed step."""

    def __init__(self, fs: LocalFilesystem, manager: Any, workers: int = 4):
        self.fs = fs
        self.manager = manager
        self.workers = max(1, int(workers))
        self._unreachable: str | None = None

    def execute(self, plan: ReconciliationPlan) -> ExecutionResult:
        self._unreachable = None
        out = ExecutionResult(cancel=plan.cancel)

        files = plan.phase(Phase.FILES)
        independent = [s for s in files if s.action is not Action.DELETE_DIR]
        out.results.extend(self._parallel(independent))
        out.results.extend(self._run(s) for s in files if s.action is Action.DELETE_DIR)

        out.results.extend(self._run(s) for s in plan.phase(Phase.ENABLEMENT))
        out.results.extend(self._run(s) for s in plan.phase(Phase.RELOAD))
        out.results.extend(self._parallel(plan.phase(Phase.COMMANDS)))
        return out

    def _parallel(self, steps: list[Step]) -> list[StepResult]:
        if len(steps) <= 1 or self.workers == 1:
            return [self._run(s) for s in steps]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(self._run, steps))

    def _run(self, step: Step) -> StepResult:
        try:
            self._apply(step)
        except StepFailed as e:
            return self._failed(step, e.cause)
        except ManagerUnreachable as e:
            self._unreachable = str(e) or "service manager unreachable"
            return self._failed(step, f"service manager unreachable: {self._unreachable}")
        except OSError as e:
            return self._failed(step, f"{type(e).__name__}: {e}")
        return StepResult(step=step, ok=True)

    def _failed(self, step: Step, cause: str) -> StepResult:
        db.log_event("ERROR", f"Step failed: {step.describe()}: {cause}", target=step.target or None)
        return StepResult(step=step, ok=False, error=cause)

    def _apply(self, step: Step) -> None:
        if step.error is not None:
            raise StepFailed(step.target, step.error)

        a = step.action
        if a is Action.WRITE_FILE:
            if step.data is None or step.mode is None:
                raise StepFailed(step.target, "write step carries no content")
            self.fs.write_file(step.target, step.data, step.mode)
            return
        if a is Action.DELETE_FILE:
            self.fs.remove(step.target)
            return
        if a is Action.DELETE_DIR:
            self.fs.remove_dir(step.target)
            return

        if self._unreachable is not None:
            raise StepFailed(step.target or "manager", f"service manager unreachable: {self._unreachable}")
        if a is Action.ENABLE_UNIT:
            self.manager.enable(step.target)
        elif a is Action.DISABLE_UNIT:
            self.manager.disable(step.target)
        elif a is Action.RELOAD_MANAGER:
            self.manager.reload_manager()
        elif a is Action.START_UNIT:
            self.manager.start(step.target)
        elif a is Action.STOP_UNIT:
            self.manager.stop(step.target)
        elif a is Action.RESTART_UNIT:
            self.manager.restart(step.target)
        else:
            raise StepFailed(step.target, f"unknown action {a!r}")
