"""Shared defaults for stepwise."""

DEFAULT_AGENT_HISTORY_SIZE = 3
DEFAULT_DELAY_MS = 1000
DEFAULT_WEBHOOK_TYPE = "generic"
DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 10.0
DEFAULT_EXECUTION_TIMEOUT_SECONDS = 300.0
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

MAX_STEPS_PER_WORKFLOW = 50
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

# Step id reported when a run fails outside of any step.
RUN_LEVEL_STEP_ID = "workflow-execution"

EXECUTION_ERROR = "EXECUTION_ERROR"
EXECUTION_TIMEOUT = "EXECUTION_TIMEOUT"
APPROVAL_REJECTED = "APPROVAL_REJECTED"
