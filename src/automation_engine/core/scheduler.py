"""
DAG 步骤调度器实现
"""
import asyncio
import logging
import time
from collections import deque, OrderedDict
from dataclasses import dataclass, field
from collections.abc import Mapping
from typing import Dict, List, Set, Optional, Any

from ..models.workflow import WorkflowDefinition, WorkflowStep, StepType, ConditionRef
from ..models.execution import ExecutionContext
from ..exceptions import CyclicDependencyError, StepExecutionError, WorkflowCancelledError
from ..monitoring import SafeMetrics, EventLogger
from .executors import StepExecutor, ConditionRegistry


logger = logging.getLogger(__name__)


@dataclass
class ExecutionPlan:
    """执行计划：定义的只读拓扑信息"""
    definition: WorkflowDefinition
    order: List[str] = field(default_factory=list)  # 声明顺序
    steps: Dict[str, WorkflowStep] = field(default_factory=dict)
    dependencies: Dict[str, Set[str]] = field(default_factory=dict)
    dependents: Dict[str, List[str]] = field(default_factory=dict)
    branches: Dict[str, List[int]] = field(default_factory=dict)  # 步骤ID -> 所属分支序号

    @classmethod
    def build(cls, definition: WorkflowDefinition) -> "ExecutionPlan":
        plan = cls(definition=definition)
        for step in definition.steps:
            plan.order.append(step.id)
            plan.steps[step.id] = step
            plan.dependencies[step.id] = set(step.dependencies)
            plan.dependents.setdefault(step.id, [])
            plan.branches[step.id] = []

        for step_id in plan.order:
            for dep_id in plan.dependencies[step_id]:
                plan.dependents.setdefault(dep_id, []).append(step_id)

        for index, branch in enumerate(definition.conditional_branches):
            for step_id in branch.steps:
                if step_id in plan.branches:
                    plan.branches[step_id].append(index)

        return plan


class ExecutionPlanCache:
    """执行计划 LRU 缓存，版本不可变，因此以 workflow_id:version 为键"""

    def __init__(self, capacity: int = 128):
        self.capacity = capacity
        self._cache: "OrderedDict[str, ExecutionPlan]" = OrderedDict()

    def get(self, key: str) -> Optional[ExecutionPlan]:
        plan = self._cache.get(key)
        if plan is not None:
            self._cache.move_to_end(key)
        return plan

    def put(self, key: str, plan: ExecutionPlan):
        if self.capacity <= 0:
            return
        if key in self._cache:
            self._cache.move_to_end(key)
        elif len(self._cache) >= self.capacity:
            self._cache.popitem(last=False)
        self._cache[key] = plan

    def clear(self):
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


class DagScheduler:
    """DAG 调度器：先执行并行组，再按依赖顺序执行剩余步骤"""

    def __init__(
        self,
        executor: StepExecutor,
        conditions: ConditionRegistry = None,
        metrics: SafeMetrics = None,
        plan_cache: ExecutionPlanCache = None,
        event_logger: EventLogger = None
    ):
        self.executor = executor
        self.conditions = conditions or ConditionRegistry()
        self.metrics = metrics or SafeMetrics()
        self.plan_cache = plan_cache or ExecutionPlanCache()
        self.events = event_logger or EventLogger()

    def get_plan(self, definition: WorkflowDefinition, cache_key: str = None) -> ExecutionPlan:
        """获取执行计划，提供缓存键时复用已构建的计划"""
        if cache_key is None:
            return ExecutionPlan.build(definition)

        plan = self.plan_cache.get(cache_key)
        if plan is None or plan.definition is not definition:
            plan = ExecutionPlan.build(definition)
            self.plan_cache.put(cache_key, plan)
        return plan

    async def run(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        cache_key: str = None
    ):
        """
        驱动一次执行直到所有步骤完成

        Raises:
            StepExecutionError: 任一步骤执行失败
            CyclicDependencyError: 存在循环依赖或无法满足的依赖
            WorkflowCancelledError: 执行被协作式取消
        """
        plan = self.get_plan(definition, cache_key)
        pending = set(plan.order)
        executed: Set[str] = set()
        branch_results: Dict[int, bool] = {}

        for step_id in plan.order:
            context.step_execution(step_id)

        # 并行组按声明顺序执行
        for index, group in enumerate(definition.parallel_groups):
            members = [step_id for step_id in dict.fromkeys(group) if step_id not in executed]
            if not members:
                continue

            self._check_cancelled(context)
            await self._run_parallel_group(index, members, plan, context, branch_results)
            executed.update(members)
            pending.difference_update(members)
            self._check_cancelled(context)

        # 就绪队列：入度为尚未执行的依赖数量
        in_degree = {
            step_id: len([dep for dep in plan.dependencies[step_id] if dep not in executed])
            for step_id in pending
        }
        ready = deque(step_id for step_id in plan.order if step_id in pending and in_degree[step_id] == 0)

        while ready:
            step_id = ready.popleft()

            await self._process_step(plan.steps[step_id], plan, context, branch_results)
            executed.add(step_id)
            pending.discard(step_id)

            for dependent in plan.dependents.get(step_id, []):
                if dependent not in pending:
                    continue
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)

        if pending:
            raise CyclicDependencyError(pending)

    async def _run_parallel_group(
        self,
        index: int,
        members: List[str],
        plan: ExecutionPlan,
        context: ExecutionContext,
        branch_results: Dict[int, bool]
    ):
        """并发执行组内所有步骤并等待全部结束"""
        logger.info(
            f"Executing parallel group {index}: {members}",
            extra={"execution_id": context.execution_id, "steps": members}
        )

        results = await asyncio.gather(
            *(self._process_step(plan.steps[step_id], plan, context, branch_results) for step_id in members),
            return_exceptions=True
        )

        self.metrics.increment(
            "workflow_parallel_groups_executed",
            workflow=context.workflow_id,
            group_size=len(members)
        )

        # 全部结束后再传播第一个失败
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _process_step(
        self,
        step: WorkflowStep,
        plan: ExecutionPlan,
        context: ExecutionContext,
        branch_results: Dict[int, bool]
    ):
        """评估条件后执行或跳过步骤"""
        self._check_cancelled(context)

        if not await self._should_run(step, plan, context, branch_results):
            context.step_execution(step.id).skip()
            logger.debug(f"Step {step.id} condition not met, skipping")
            self.events.log("step_skipped", execution_id=context.execution_id, step_id=step.id)
            self.metrics.increment("workflow_steps_skipped", workflow=context.workflow_id, step=step.id)
            return

        await self._execute_step(step, context)

    async def _should_run(
        self,
        step: WorkflowStep,
        plan: ExecutionPlan,
        context: ExecutionContext,
        branch_results: Dict[int, bool]
    ) -> bool:
        try:
            for branch_index in plan.branches.get(step.id, []):
                if branch_index not in branch_results:
                    branch = plan.definition.conditional_branches[branch_index]
                    branch_results[branch_index] = await self._evaluate(branch.condition, context)
                if not branch_results[branch_index]:
                    return False

            gate = self._gate_ref(step)
            if gate is not None:
                return await self._evaluate(gate, context)
            return True

        except Exception as e:
            context.step_execution(step.id).fail(e)
            raise StepExecutionError(step.id, f"condition evaluation failed: {e}", e) from e

    def _gate_ref(self, step: WorkflowStep) -> Optional[ConditionRef]:
        """条件步骤未指定 target 时，condition 作为其谓词而不是执行门控"""
        if step.type == StepType.CONDITION and not step.target:
            return None
        return step.condition

    async def _evaluate(self, ref: ConditionRef, context: ExecutionContext) -> bool:
        return await self.conditions.evaluate(ref, context.variables, context.step_results)

    async def _execute_step(self, step: WorkflowStep, context: ExecutionContext):
        """执行单个步骤"""
        context.current_step = step.id
        record = context.step_execution(step.id)

        # 收集输入，未解析的名称以 None 传递
        inputs = {name: context.resolve_input(name) for name in step.inputs}
        record.start(inputs)

        logger.debug(
            f"Executing step {step.id}",
            extra={"execution_id": context.execution_id, "step_id": step.id, "step_name": step.name}
        )
        start_time = time.time()

        try:
            result = await self._dispatch(step, inputs, context)

        except (WorkflowCancelledError, asyncio.CancelledError):
            record.cancel()
            raise

        except Exception as e:
            record.fail(e)
            self.metrics.increment(
                "workflow_step_errors",
                workflow=context.workflow_id,
                step=step.id,
                type=step.type.value
            )
            logger.error(
                f"Step execution failed: {step.id}: {e}",
                extra={"execution_id": context.execution_id, "step_id": step.id}
            )
            raise StepExecutionError(step.id, str(e), e) from e

        self._store_outputs(step, result, context)
        record.complete()

        self.metrics.observe(
            "workflow_step_duration_ms",
            (time.time() - start_time) * 1000,
            workflow=context.workflow_id,
            step=step.id,
            type=step.type.value
        )

    async def _dispatch(self, step: WorkflowStep, inputs: Dict[str, Any], context: ExecutionContext) -> Any:
        """按步骤类型分发"""
        if step.type == StepType.CONDITION:
            predicate = step.target or step.condition
            if predicate is None:
                return True
            return await self._evaluate(predicate, context)

        if step.type == StepType.PARALLEL:
            # 并行标记只用于声明，由并行组处理
            return None

        return await self.executor.invoke(step.type, step.target, inputs, context.cancellation)

    def _store_outputs(self, step: WorkflowStep, result: Any, context: ExecutionContext):
        """保存步骤输出"""
        if not step.outputs:
            return

        if len(step.outputs) == 1:
            context.step_results[step.outputs[0]] = result
            return

        if not isinstance(result, Mapping):
            logger.warning(
                f"Step {step.id} declares outputs {step.outputs} but returned {type(result).__name__}"
            )
            return

        for key in step.outputs:
            if key in result:
                context.step_results[key] = result[key]

    def _check_cancelled(self, context: ExecutionContext):
        if context.cancellation.cancelled:
            raise WorkflowCancelledError(context.execution_id)
