from triage.executor.errors import ActionExecutionError, ActionValidationError, MultipleActionsError
from triage.executor.executor import ActionExecutor, ExecutionOptions, ExecutorInput

__all__ = [
    "ActionExecutionError",
    "ActionExecutor",
    "ActionValidationError",
    "ExecutionOptions",
    "ExecutorInput",
    "MultipleActionsError",
]
