"""Error taxonomy for the UI automation core.

Only ExtractionFailed is allowed to reach the workflow orchestrator; the other
kinds are recovered locally (as a None result, a soft timeout or a retried
action). ElementNotFound and TransitionTimeout are not raised; their messages
become the detail of FAILED and TIMED_OUT step outcomes, which is what logs
and metrics report.
"""

from typing import Optional


class DeckRelayError(Exception):
    """Base class for all deckrelay errors"""


class ElementNotFound(DeckRelayError):
    """A cascade exhausted all of its descriptors"""

    def __init__(self, cascade_name: str):
        self.cascade_name = cascade_name
        super().__init__(f"No usable element for cascade '{cascade_name}'")


class TransitionTimeout(DeckRelayError):
    """A poll deadline elapsed before the UI transition was observed"""

    def __init__(self, description: str, timeout: float):
        self.description = description
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:.0f}s waiting for {description}")


class ExtractionFailed(DeckRelayError):
    """Every response extraction strategy came back empty"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "Could not extract the LLM response from the page. The response may not have "
            "generated properly or the page structure is different than expected."
        )


class ActionRejected(DeckRelayError):
    """A click/type/fill raised because the element went stale or disabled"""

    def __init__(self, action: str, target: str, cause: Optional[BaseException] = None):
        self.action = action
        self.target = target
        self.cause = cause
        super().__init__(f"{action} rejected on {target}: {cause}")
