"""
工作流执行模型
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
from enum import Enum


class ExecutionStatus(Enum):
    """工作流执行状态"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepStatus(Enum):
    """步骤执行状态"""
    WAITING = "waiting"
    RUNNING = "running"
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.CANCELLED,
)


class CancellationToken:
    """协作式取消令牌，传递给每次步骤执行"""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = None):
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self):
        """等待取消信号，供长时间运行的执行器使用"""
        await self._event.wait()


@dataclass
class StepExecution:
    """步骤执行记录"""
    step_id: str
    status: StepStatus = StepStatus.WAITING
    inputs: Dict[str, Any] = field(default_factory=dict)
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    duration: Optional[float] = None
    error: Optional[str] = None

    def start(self, inputs: Dict[str, Any]):
        """开始执行"""
        self.status = StepStatus.RUNNING
        self.inputs = inputs
        self.start_time = time.time()

    def complete(self):
        """完成执行"""
        self._finish(StepStatus.SUCCESS)

    def skip(self):
        """跳过执行"""
        self._finish(StepStatus.SKIPPED)

    def fail(self, error: Exception):
        """执行失败"""
        self.error = f"{type(error).__name__}: {error}"
        self._finish(StepStatus.FAILED)

    def cancel(self):
        """取消执行"""
        self._finish(StepStatus.CANCELLED)

    def _finish(self, status: StepStatus):
        self.status = status
        self.end_time = time.time()
        if self.start_time:
            self.duration = self.end_time - self.start_time


@dataclass
class ExecutionContext:
    """执行上下文"""
    execution_id: str
    workflow_id: str
    version: int
    variables: Dict[str, Any] = field(default_factory=dict)
    step_results: Dict[str, Any] = field(default_factory=dict)  # 输出键 -> 值
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_step: Optional[str] = None
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    error: Optional[Exception] = None
    steps: Dict[str, StepExecution] = field(default_factory=dict)
    cancellation: CancellationToken = field(default_factory=CancellationToken, repr=False)

    def step_execution(self, step_id: str) -> StepExecution:
        """获取或创建步骤执行记录"""
        if step_id not in self.steps:
            self.steps[step_id] = StepExecution(step_id=step_id)
        return self.steps[step_id]

    def resolve_input(self, name: str) -> Any:
        """先查变量，再查步骤输出；都不存在时返回 None"""
        if name in self.variables:
            return self.variables[name]
        return self.step_results.get(name)

    def start(self):
        """开始执行"""
        self.status = ExecutionStatus.RUNNING
        self.start_time = time.time()

    def complete(self):
        """完成执行"""
        self.status = ExecutionStatus.COMPLETED
        self.end_time = time.time()

    def fail(self, error: Exception):
        """执行失败"""
        self.status = ExecutionStatus.FAILED
        self.error = error
        self.end_time = time.time()

    def cancel(self, reason: str = None):
        """取消执行，只对运行中的执行生效"""
        if self.status != ExecutionStatus.RUNNING:
            return False
        self.status = ExecutionStatus.CANCELLED
        self.end_time = time.time()
        self.cancellation.cancel(reason)
        return True

    def is_terminal(self) -> bool:
        """是否为终止状态"""
        return self.status in TERMINAL_STATUSES

    @property
    def duration(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "version": self.version,
            "status": self.status.value,
            "current_step": self.current_step,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "error": str(self.error) if self.error else None,
            "step_results": dict(self.step_results),
            "steps": {
                step_id: {
                    "status": record.status.value,
                    "start_time": record.start_time,
                    "duration": record.duration,
                    "error": record.error,
                }
                for step_id, record in self.steps.items()
            },
        }
