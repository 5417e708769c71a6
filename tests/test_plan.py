"""
Tests for multi-step plan approval and execution.

Run with:
$ pytest -q
"""

import pytest

from conftest import make_console
from console_agent.core.schema import PlanStep
from console_agent.execution.executor import (
    CodeExecutor,
    NamespaceContext,
)
from console_agent.execution.plan import (
    PlanExecutor,
    parse_steps,
)

STEPS = [
    {"description": "find the user", "code": "10"},
    {"description": "double it", "code": "step1 * 2"},
    {"description": "describe", "code": "f'total={step2}'"},
]


def _plans(*inputs, auto_execute=False, namespace=None):
    console = make_console(*inputs)
    executor = CodeExecutor(NamespaceContext(namespace), console, stdout=console.stdout)
    return PlanExecutor(executor, auto_execute=auto_execute), console


def test_auto_execute_runs_every_step_and_binds_results() -> None:
    """With auto-execute on, each step runs and sees earlier step values."""

    namespace = {}
    plans, _ = _plans(auto_execute=True, namespace=namespace)

    report = plans.run(STEPS[:2])

    assert "Step 1 (find the user):" in report
    assert "Return value: 10" in report
    assert "Step 2 (double it):" in report
    assert "Return value: 20" in report
    assert namespace["step1"] == 10
    assert namespace["step2"] == 20


def test_decline_before_start_runs_nothing() -> None:
    """Declining the whole plan gives zero step results and records feedback."""

    namespace = {}
    plans, console = _plans("n", "use the replica", namespace=namespace)

    outcome = plans.execute(parse_steps(STEPS))

    assert outcome.results == []
    assert outcome.declined
    assert outcome.declined_at is None
    assert outcome.feedback == "use the replica"
    assert "step1" not in namespace
    assert "Plan declined." in console.stdout.getvalue()
    assert outcome.to_text() == "User declined the plan. Feedback: use the replica"


def test_decline_mid_plan_keeps_completed_steps() -> None:
    """Declining step 3 after two accepted steps yields two results plus the decline."""

    plans, _ = _plans("y", "y", "y", "n", "stop here")

    outcome = plans.execute(parse_steps(STEPS))

    assert len(outcome.results) == 2
    assert outcome.declined_at == 3
    assert outcome.feedback == "stop here"
    assert outcome.to_text().endswith("Step 3: User declined. Feedback: stop here")


def test_auto_answer_skips_step_confirmations() -> None:
    """Answering 'a' at plan approval runs the remaining steps without asking."""

    plans, _ = _plans("a")

    outcome = plans.execute(parse_steps(STEPS))

    assert [r.return_value for r in outcome.results] == [10, 20, "total=20"]
    assert not outcome.declined


def test_blank_feedback_is_defaulted() -> None:
    """Declining without feedback records a placeholder."""

    plans, _ = _plans("n", "")
    outcome = plans.execute([PlanStep(description="x", code="1")])
    assert outcome.feedback == "(no feedback provided)"


def test_failed_step_is_reported_and_plan_continues() -> None:
    """A failing step records its error; later steps still run."""

    plans, _ = _plans(auto_execute=True)
    outcome = plans.execute(
        [PlanStep(description="boom", code="1 / 0"), PlanStep(description="after", code="step1")]
    )

    assert outcome.results[0].error == "Error: ZeroDivisionError: division by zero"
    assert outcome.results[1].return_value is None
    assert outcome.results[1].error is None


def test_edited_step_declined(monkeypatch) -> None:
    """Declining an edited step is reported as a decline after edit."""

    monkeypatch.setattr("console_agent.execution.plan.open_in_editor", lambda code: "99")
    plans, _ = _plans("y", "edit", "n", "nope")

    outcome = plans.execute([PlanStep(description="x", code="1")])

    assert outcome.after_edit
    assert outcome.to_text() == "Step 1: User declined after edit. Feedback: nope"


def test_empty_plan() -> None:
    """An empty step list is answered without prompting."""

    plans, _ = _plans()
    assert plans.run([]) == "No steps provided."


def test_invalid_step_raises() -> None:
    """Steps must be objects."""

    with pytest.raises(ValueError):
        parse_steps(["print(1)"])
