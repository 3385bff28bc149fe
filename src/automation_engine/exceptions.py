"""
工作流引擎异常定义
"""
from typing import Iterable, List, Optional


class WorkflowEngineError(Exception):
    """工作流引擎基础异常"""
    pass


class ValidationError(WorkflowEngineError):
    """定义或模板参数验证异常"""
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class NotFoundError(WorkflowEngineError):
    """资源未找到异常"""
    def __init__(self, kind: str, identifier: str, message: str = None):
        self.kind = kind
        self.identifier = identifier
        super().__init__(message or f"{kind} not found: {identifier}")


class CyclicDependencyError(WorkflowEngineError):
    """循环依赖或无法满足的依赖"""
    def __init__(self, step_ids: Iterable[str]):
        self.step_ids = sorted(step_ids)
        super().__init__(
            "Circular dependency detected or unsatisfied dependencies: "
            + ", ".join(self.step_ids)
        )


class StepExecutionError(WorkflowEngineError):
    """步骤执行异常"""
    def __init__(self, step_id: str, message: str, cause: Exception = None):
        self.step_id = step_id
        self.cause = cause
        super().__init__(f"Step '{step_id}' execution failed: {message}")


class WorkflowCancelledError(WorkflowEngineError):
    """工作流取消异常"""
    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution cancelled: {execution_id}")
