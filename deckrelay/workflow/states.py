"""Workflow states and the transition function.

The transition is a pure function of the current state and the outcome of the
step that just ran, so the whole graph can be tested without a browser.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class WorkflowState(str, Enum):
    INIT = "init"
    LOGIN_CHECK = "login_check"
    LOGIN = "login"
    SIGNUP_FALLBACK = "signup_fallback"
    KNOWLEDGE_SELECT = "knowledge_select"
    PROMPT_SUBMIT = "prompt_submit"
    RESPONSE_WAIT = "response_wait"
    RESPONSE_EXTRACT = "response_extract"
    UPLOAD_NAVIGATE = "upload_navigate"
    CONTENT_FILL = "content_fill"
    OUTLINE_WAIT = "outline_wait"
    TEMPLATE_SELECT_CHECK = "template_select_check"
    TEMPLATE_SELECT = "template_select"
    GENERATE_WAIT = "generate_wait"
    GENERATE_CLICK = "generate_click"
    PRESENTATION_REDIRECT_WAIT = "presentation_redirect_wait"
    RENDER_WAIT = "render_wait"
    REVIEW_HOLD = "review_hold"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (WorkflowState.DONE, WorkflowState.FAILED)


class StepStatus(str, Enum):
    SUCCESS = "success"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    """What one state's step observed.

    ``branch`` selects between successors where the graph forks; ``element``
    carries a resolved element into the next state (e.g. the enabled generate
    button found by the wait, clicked by the following state).
    """
    status: StepStatus
    branch: Optional[str] = None
    element: Any = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCESS


# Branch names
BRANCH_CHAT = "chat"
BRANCH_LOGIN = "login"
BRANCH_SIGNUP = "signup"
BRANCH_UNKNOWN = "unknown"
BRANCH_TEMPLATES = "templates"
BRANCH_RETRY = "retry"
BRANCH_EXTRACT_ONLY = "extract_only"


# Successor of each state when its step did not fork or fail
_LINEAR: Dict[WorkflowState, WorkflowState] = {
    WorkflowState.INIT: WorkflowState.LOGIN_CHECK,
    WorkflowState.LOGIN: WorkflowState.KNOWLEDGE_SELECT,
    WorkflowState.SIGNUP_FALLBACK: WorkflowState.KNOWLEDGE_SELECT,
    WorkflowState.KNOWLEDGE_SELECT: WorkflowState.PROMPT_SUBMIT,
    WorkflowState.PROMPT_SUBMIT: WorkflowState.RESPONSE_WAIT,
    WorkflowState.RESPONSE_WAIT: WorkflowState.RESPONSE_EXTRACT,
    WorkflowState.RESPONSE_EXTRACT: WorkflowState.UPLOAD_NAVIGATE,
    WorkflowState.UPLOAD_NAVIGATE: WorkflowState.CONTENT_FILL,
    WorkflowState.CONTENT_FILL: WorkflowState.OUTLINE_WAIT,
    WorkflowState.OUTLINE_WAIT: WorkflowState.TEMPLATE_SELECT_CHECK,
    WorkflowState.TEMPLATE_SELECT_CHECK: WorkflowState.GENERATE_WAIT,
    WorkflowState.TEMPLATE_SELECT: WorkflowState.GENERATE_WAIT,
    WorkflowState.GENERATE_WAIT: WorkflowState.GENERATE_CLICK,
    WorkflowState.GENERATE_CLICK: WorkflowState.PRESENTATION_REDIRECT_WAIT,
    WorkflowState.PRESENTATION_REDIRECT_WAIT: WorkflowState.RENDER_WAIT,
    WorkflowState.RENDER_WAIT: WorkflowState.REVIEW_HOLD,
    WorkflowState.REVIEW_HOLD: WorkflowState.DONE,
}

_LOGIN_BRANCHES: Dict[str, WorkflowState] = {
    BRANCH_CHAT: WorkflowState.KNOWLEDGE_SELECT,
    BRANCH_LOGIN: WorkflowState.LOGIN,
    BRANCH_SIGNUP: WorkflowState.SIGNUP_FALLBACK,
    BRANCH_UNKNOWN: WorkflowState.KNOWLEDGE_SELECT,
}

# States whose failure aborts the run; every other state advances with
# degraded confidence
FATAL_ON_FAILURE = frozenset({
    WorkflowState.INIT,
    WorkflowState.PROMPT_SUBMIT,
    WorkflowState.RESPONSE_EXTRACT,
    WorkflowState.GENERATE_CLICK,
})


def next_state(state: WorkflowState, outcome: StepOutcome) -> WorkflowState:
    """
    Decide the successor of ``state`` given the outcome of its step.

    Args:
        state: State whose step just ran
        outcome: What the step observed

    Returns:
        The next WorkflowState
    """
    if state.terminal:
        return state

    if outcome.status is StepStatus.FAILED and state in FATAL_ON_FAILURE:
        return WorkflowState.FAILED

    if state is WorkflowState.LOGIN_CHECK:
        return _LOGIN_BRANCHES.get(outcome.branch, WorkflowState.KNOWLEDGE_SELECT)

    if state is WorkflowState.RESPONSE_EXTRACT and outcome.branch == BRANCH_EXTRACT_ONLY:
        return WorkflowState.DONE

    if state is WorkflowState.CONTENT_FILL and outcome.branch == BRANCH_RETRY:
        return WorkflowState.CONTENT_FILL

    if state is WorkflowState.TEMPLATE_SELECT_CHECK and outcome.branch == BRANCH_TEMPLATES:
        return WorkflowState.TEMPLATE_SELECT

    return _LINEAR[state]
