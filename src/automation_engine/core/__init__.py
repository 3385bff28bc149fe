"""Core workflow engine components"""

from .engine import WorkflowEngine
from .scheduler import DagScheduler, ExecutionPlan, ExecutionPlanCache
from .parser import DefinitionParser
from .versioning import VersionStore
from .templates import TemplateRegistry
from .executors import StepExecutor, FunctionStepExecutor, ConditionRegistry

__all__ = [
    "WorkflowEngine",
    "DagScheduler",
    "ExecutionPlan",
    "ExecutionPlanCache",
    "DefinitionParser",
    "VersionStore",
    "TemplateRegistry",
    "StepExecutor",
    "FunctionStepExecutor",
    "ConditionRegistry"
]
