"""Unit tests for the workflow transition function"""

import pytest
from pathlib import Path
import sys

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from deckrelay.workflow.states import (
    BRANCH_CHAT,
    BRANCH_EXTRACT_ONLY,
    BRANCH_LOGIN,
    BRANCH_RETRY,
    BRANCH_SIGNUP,
    BRANCH_TEMPLATES,
    BRANCH_UNKNOWN,
    FATAL_ON_FAILURE,
    StepOutcome,
    StepStatus,
    WorkflowState,
    next_state,
)

S = WorkflowState
SUCCESS = StepOutcome(StepStatus.SUCCESS)
TIMED_OUT = StepOutcome(StepStatus.TIMED_OUT)
FAILED = StepOutcome(StepStatus.FAILED)


class TestLinearPath:
    """Test the happy path through both applications"""

    def test_full_path_with_template_selection(self):
        """Test the successor chain from INIT to DONE"""
        branches = {
            S.LOGIN_CHECK: BRANCH_CHAT,
            S.TEMPLATE_SELECT_CHECK: BRANCH_TEMPLATES,
        }
        state = S.INIT
        visited = [state]
        while not state.terminal:
            state = next_state(state, StepOutcome(StepStatus.SUCCESS, branch=branches.get(state)))
            visited.append(state)

        assert visited == [
            S.INIT, S.LOGIN_CHECK, S.KNOWLEDGE_SELECT, S.PROMPT_SUBMIT, S.RESPONSE_WAIT,
            S.RESPONSE_EXTRACT, S.UPLOAD_NAVIGATE, S.CONTENT_FILL, S.OUTLINE_WAIT,
            S.TEMPLATE_SELECT_CHECK, S.TEMPLATE_SELECT, S.GENERATE_WAIT, S.GENERATE_CLICK,
            S.PRESENTATION_REDIRECT_WAIT, S.RENDER_WAIT, S.REVIEW_HOLD, S.DONE,
        ]

    def test_template_selection_skipped(self):
        """Test that no template branch goes straight to the generate wait"""
        assert next_state(S.TEMPLATE_SELECT_CHECK, StepOutcome(StepStatus.SKIPPED)) is S.GENERATE_WAIT
        assert next_state(S.TEMPLATE_SELECT_CHECK, TIMED_OUT) is S.GENERATE_WAIT

    def test_extract_only_stops_after_extraction(self):
        outcome = StepOutcome(StepStatus.SUCCESS, branch=BRANCH_EXTRACT_ONLY)

        assert next_state(S.RESPONSE_EXTRACT, outcome) is S.DONE


class TestLoginBranches:
    """Test the LOGIN_CHECK fork"""

    @pytest.mark.parametrize("branch,expected", [
        (BRANCH_CHAT, S.KNOWLEDGE_SELECT),
        (BRANCH_LOGIN, S.LOGIN),
        (BRANCH_SIGNUP, S.SIGNUP_FALLBACK),
        (BRANCH_UNKNOWN, S.KNOWLEDGE_SELECT),
        (None, S.KNOWLEDGE_SELECT),
    ])
    def test_branch(self, branch, expected):
        assert next_state(S.LOGIN_CHECK, StepOutcome(StepStatus.SUCCESS, branch=branch)) is expected

    def test_login_and_signup_rejoin(self):
        """Test that both login paths continue to knowledge selection even on timeout"""
        assert next_state(S.LOGIN, TIMED_OUT) is S.KNOWLEDGE_SELECT
        assert next_state(S.SIGNUP_FALLBACK, StepOutcome(StepStatus.SKIPPED)) is S.KNOWLEDGE_SELECT


class TestFailures:
    """Test fatal and non-fatal failure handling"""

    @pytest.mark.parametrize("state", sorted(FATAL_ON_FAILURE, key=lambda s: s.value))
    def test_fatal_states(self, state):
        assert next_state(state, FAILED) is S.FAILED

    def test_non_fatal_failure_advances(self):
        """Test that a failure outside the fatal set continues with degraded confidence"""
        assert next_state(S.KNOWLEDGE_SELECT, FAILED) is S.PROMPT_SUBMIT
        assert next_state(S.RENDER_WAIT, FAILED) is S.REVIEW_HOLD

    def test_timeouts_never_fatal(self):
        for state in FATAL_ON_FAILURE:
            assert next_state(state, TIMED_OUT) is not S.FAILED

    def test_terminal_states_absorb(self):
        assert next_state(S.DONE, FAILED) is S.DONE
        assert next_state(S.FAILED, SUCCESS) is S.FAILED


class TestContentFillRetry:
    def test_retry_branch_loops(self):
        assert next_state(S.CONTENT_FILL, StepOutcome(StepStatus.SKIPPED, branch=BRANCH_RETRY)) is S.CONTENT_FILL

    def test_no_input_advances(self):
        assert next_state(S.CONTENT_FILL, StepOutcome(StepStatus.SKIPPED)) is S.OUTLINE_WAIT


class TestStepOutcome:
    def test_ok_only_for_success(self):
        assert SUCCESS.ok
        assert not TIMED_OUT.ok
        assert not StepOutcome(StepStatus.SKIPPED).ok
