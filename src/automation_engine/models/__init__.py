"""Workflow definition and execution models"""

from .workflow import (
    WorkflowDefinition, WorkflowStep, StepType, ConditionalBranch, RetryPolicy,
    WorkflowVersion, WorkflowTemplate, TemplateParameter, ParameterType,
    Predicate, ConditionRef
)
from .execution import (
    ExecutionContext, ExecutionStatus, StepExecution, StepStatus,
    CancellationToken, TERMINAL_STATUSES
)

__all__ = [
    "WorkflowDefinition",
    "WorkflowStep",
    "StepType",
    "ConditionalBranch",
    "RetryPolicy",
    "WorkflowVersion",
    "WorkflowTemplate",
    "TemplateParameter",
    "ParameterType",
    "Predicate",
    "ConditionRef",
    "ExecutionContext",
    "ExecutionStatus",
    "StepExecution",
    "StepStatus",
    "CancellationToken",
    "TERMINAL_STATUSES"
]
