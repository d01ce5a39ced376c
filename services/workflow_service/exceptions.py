# exceptions.py - Error kinds raised by the workflow service
# Not-found and configuration errors are raised to callers; step errors are
# caught by the engine and recorded on the step execution.

class WorkflowError(Exception):
    """Base class for workflow service errors."""
    pass

class TemplateNotFoundError(WorkflowError):
    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Workflow template {template_id} not found")

class ExecutionNotFoundError(WorkflowError):
    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Workflow execution {execution_id} not found")

class StepNotFoundError(WorkflowError):
    def __init__(self, step_id: str, template_id: str):
        self.step_id = step_id
        self.template_id = template_id
        super().__init__(f"Step {step_id} not found in template {template_id}")

class StepConfigurationError(WorkflowError):
    """A step is missing the configuration its type requires. Never retried."""

    def __init__(self, step_id: str, message: str):
        self.step_id = step_id
        super().__init__(message)

class StepExecutionError(WorkflowError):
    """A transient failure while running a step. Retried under the retry policy."""
    pass

class InvalidStepStateError(WorkflowError):
    """A submission targets a step that is not waiting for input."""
    pass

class InvalidSubmissionError(WorkflowError):
    """A decision or approval that the waiting step cannot accept."""
    pass

class WorkflowCapacityError(WorkflowError):
    """Too many executions are live at once."""
    pass

class TemplateProtectedError(WorkflowError):
    """A built-in template cannot be replaced or deleted."""
    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Workflow template {template_id} is built in and cannot be modified")
