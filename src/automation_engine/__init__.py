"""
Automation Workflow Engine - 版本化 DAG 工作流引擎
"""

__version__ = "0.1.0"

from .core.engine import WorkflowEngine
from .core.scheduler import DagScheduler
from .core.parser import DefinitionParser
from .core.executors import StepExecutor, FunctionStepExecutor, ConditionRegistry
from .models.workflow import WorkflowDefinition, WorkflowStep, WorkflowTemplate, WorkflowVersion
from .models.execution import ExecutionContext, ExecutionStatus
from .config import EngineSettings

__all__ = [
    "WorkflowEngine",
    "DagScheduler",
    "DefinitionParser",
    "StepExecutor",
    "FunctionStepExecutor",
    "ConditionRegistry",
    "WorkflowDefinition",
    "WorkflowStep",
    "WorkflowTemplate",
    "WorkflowVersion",
    "ExecutionContext",
    "ExecutionStatus",
    "EngineSettings"
]
