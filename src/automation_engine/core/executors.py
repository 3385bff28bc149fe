"""
步骤执行器与条件谓词注册表
"""
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Optional, Callable, List

from ..models.workflow import StepType, Predicate, ConditionRef
from ..models.execution import CancellationToken
from ..exceptions import NotFoundError


logger = logging.getLogger(__name__)


class StepExecutor(ABC):
    """步骤执行器接口，由引擎外部注入具体实现"""

    @abstractmethod
    async def invoke(
        self,
        step_type: StepType,
        target: Optional[str],
        inputs: Dict[str, Any],
        cancellation: CancellationToken
    ) -> Any:
        """执行步骤并返回结果，失败时抛出异常"""
        pass


@dataclass
class _RegisteredFunction:
    func: Callable
    wants_cancellation: bool = False


class FunctionStepExecutor(StepExecutor):
    """按目标名称分发到已注册函数的执行器"""

    def __init__(self):
        self.functions: Dict[str, _RegisteredFunction] = {}

    def register(self, name: str, func: Callable, wants_cancellation: bool = False):
        """
        注册目标函数

        Args:
            name: 步骤 target 引用的名称
            func: 同步或异步函数，签名为 func(inputs) 或 func(inputs, cancellation)
            wants_cancellation: 是否把取消令牌作为第二个参数传入
        """
        if not callable(func):
            raise ValueError(f"Handler for target {name} must be callable")
        self.functions[name] = _RegisteredFunction(func, wants_cancellation)
        logger.info(f"Registered step target: {name}")

    def unregister(self, name: str):
        self.functions.pop(name, None)

    def list_targets(self) -> List[str]:
        return list(self.functions.keys())

    async def invoke(
        self,
        step_type: StepType,
        target: Optional[str],
        inputs: Dict[str, Any],
        cancellation: CancellationToken
    ) -> Any:
        registered = self.functions.get(target) if target else None
        if registered is None:
            raise NotFoundError("Step target", str(target))

        if registered.wants_cancellation:
            result = registered.func(inputs, cancellation)
        else:
            result = registered.func(inputs)

        if inspect.isawaitable(result):
            result = await result
        return result


class ConditionRegistry:
    """条件谓词注册表，谓词签名为 (variables, step_results) -> bool"""

    def __init__(self):
        self.predicates: Dict[str, Predicate] = {}

    def register(self, name: str, predicate: Predicate):
        if not callable(predicate):
            raise ValueError(f"Predicate {name} must be callable")
        self.predicates[name] = predicate

    def resolve(self, ref: ConditionRef) -> Predicate:
        """把条件引用解析为谓词"""
        if callable(ref):
            return ref
        predicate = self.predicates.get(ref)
        if predicate is None:
            raise NotFoundError("Condition", str(ref))
        return predicate

    async def evaluate(
        self,
        ref: ConditionRef,
        variables: Dict[str, Any],
        step_results: Dict[str, Any]
    ) -> bool:
        """求值条件，谓词只读取传入数据的副本"""
        predicate = self.resolve(ref)
        result = predicate(dict(variables), dict(step_results))
        if inspect.isawaitable(result):
            result = await result
        return bool(result)
