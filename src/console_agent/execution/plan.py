"""
Multi-step plan execution with human approval.

A plan is an ordered list of ``{description, code}`` steps.  The whole plan is shown first, then
approved (``y`` = confirm each step, ``a`` = run the rest without asking) or declined with
feedback.  Every executed step's return value is bound as ``step1``, ``step2``, ... in the shared
execution context; that binding is the only way data passes between steps.
"""

import logging
from typing import (
    Any,
    Iterable,
    List,
    Mapping,
)

from pydantic import ValidationError

from console_agent.common import AnsiColors
from console_agent.core.schema import (
    PlanOutcome,
    PlanStep,
    StepResult,
)
from console_agent.execution.executor import CodeExecutor
from console_agent.terminal import open_in_editor

logger = logging.getLogger(__name__)


def parse_steps(raw_steps: Iterable[Any] | None) -> List[PlanStep]:
    """Validate the model's ``steps`` argument; unusable entries raise ``ValueError``."""
    steps = []
    for i, raw in enumerate(raw_steps or [], start=1):
        if isinstance(raw, PlanStep):
            steps.append(raw)
            continue
        if not isinstance(raw, Mapping):
            raise ValueError(f"step {i} must be an object with 'description' and 'code'")
        try:
            steps.append(PlanStep.model_validate(dict(raw)))
        except ValidationError as exc:
            raise ValueError(f"step {i} is invalid: {exc}") from exc
    return steps


class PlanExecutor:
    """Shows, approves and runs plans through a :class:`CodeExecutor`."""

    def __init__(self, executor: CodeExecutor, auto_execute: bool = False):
        self.executor = executor
        self.console = executor.console
        self.auto_execute = auto_execute

    def run(self, raw_steps: Iterable[Any] | None) -> str:
        """Entry point for the ``execute_plan`` tool: returns the report text."""
        steps = parse_steps(raw_steps)
        if not steps:
            return "No steps provided."
        return self.execute(steps).to_text()

    def execute(self, steps: List[PlanStep]) -> PlanOutcome:
        """Display, approve and execute *steps*."""
        outcome = PlanOutcome()
        self._display_plan(steps)

        skip_confirmations = self.auto_execute
        if not self.auto_execute:
            answer = (self.console.ask("  Accept plan? [y/N/a(uto)] ") or "").lower()
            if answer in ("a", "auto"):
                skip_confirmations = True
            elif answer not in ("y", "yes"):
                self.console.say("  Plan declined.", AnsiColors.YELLOW)
                outcome.declined = True
                outcome.feedback = self.console.ask_feedback()
                return outcome

        total = len(steps)
        for index, step in enumerate(steps, start=1):
            self.console.say()
            self.console.say(f"  Step {index}/{total}: {step.description}", AnsiColors.CYAN)
            self.console.say("  # Code:", AnsiColors.YELLOW)
            self.console.say(_indent(step.code), AnsiColors.WHITE)

            if not skip_confirmations and not self._approve_step(step, index, outcome):
                break

            outcome.results.append(self._run_step(step, index))

        return outcome

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _display_plan(self, steps: List[PlanStep]) -> None:
        self.console.say()
        self.console.say(f"  Plan ({len(steps)} steps):", AnsiColors.CYAN)
        for index, step in enumerate(steps, start=1):
            self.console.say(f"  {index}. {step.description}", AnsiColors.CYAN)
            self.console.say(_indent(step.code), AnsiColors.WHITE)
        self.console.say()

    def _approve_step(self, step: PlanStep, index: int, outcome: PlanOutcome) -> bool:
        """Per-step confirmation.  May edit ``step.code`` in place; records a decline on refusal."""
        answer = (self.console.ask("  Run? [y/N/edit] ") or "").lower()

        if answer in ("y", "yes"):
            return True

        if answer in ("e", "edit"):
            edited = open_in_editor(step.code)
            if not edited or edited == step.code.strip():
                return True
            self.console.say("  # Edited code:", AnsiColors.YELLOW)
            self.console.say(_indent(edited), AnsiColors.WHITE)
            if self.console.confirm("  Run edited code? [y/N] "):
                step.code = edited
                return True
            outcome.after_edit = True

        outcome.declined = True
        outcome.declined_at = index
        outcome.feedback = self.console.ask_feedback()
        return False

    def _run_step(self, step: PlanStep, index: int) -> StepResult:
        value = self.executor.execute(step.code)
        self.executor.context.bind(f"step{index}", value)
        return StepResult(
            index=index,
            description=step.description,
            code=step.code,
            output=self.executor.last_output,
            return_value=value,
            error=self.executor.last_error,
        )


def _indent(code: str, prefix: str = "     ") -> str:
    return "\n".join(prefix + line for line in code.splitlines())
