"""
工作流执行引擎
"""
import asyncio
import logging
import time
from collections import deque
from typing import Dict, Any, Optional, List, Union, Deque
from uuid import uuid4

from ..config import EngineSettings
from ..models.workflow import WorkflowDefinition, WorkflowVersion, WorkflowTemplate
from ..models.execution import ExecutionContext, ExecutionStatus
from ..exceptions import WorkflowEngineError, NotFoundError, WorkflowCancelledError
from ..monitoring import MetricsSink, SafeMetrics, EventLogger
from ..storage.repository import (
    VersionRepository, TemplateRepository, ExecutionRepository, InMemoryExecutionRepository
)
from .executors import StepExecutor, FunctionStepExecutor, ConditionRegistry
from .parser import DefinitionParser
from .scheduler import DagScheduler, ExecutionPlanCache
from .templates import TemplateRegistry
from .versioning import VersionStore


logger = logging.getLogger(__name__)


class WorkflowEngine:
    """工作流执行引擎，同时作为执行注册表对外提供全部操作"""

    def __init__(
        self,
        executor: StepExecutor = None,
        conditions: ConditionRegistry = None,
        version_repository: VersionRepository = None,
        template_repository: TemplateRepository = None,
        execution_repository: ExecutionRepository = None,
        metrics_sink: MetricsSink = None,
        settings: EngineSettings = None,
        event_logger: EventLogger = None
    ):
        self.settings = settings or EngineSettings()
        self.executor = executor or FunctionStepExecutor()
        self.conditions = conditions or ConditionRegistry()
        self.metrics = SafeMetrics(metrics_sink, enabled=self.settings.metrics_enabled)
        self.events = event_logger or EventLogger()
        self.parser = DefinitionParser()

        self.versions = VersionStore(version_repository, self.metrics, self.parser)
        self.templates = TemplateRegistry(self.versions, template_repository, self.metrics, self.parser)
        self.execution_repository = execution_repository or InMemoryExecutionRepository()

        self.plan_cache = ExecutionPlanCache(self.settings.plan_cache_size)
        self.scheduler = DagScheduler(
            self.executor,
            conditions=self.conditions,
            metrics=self.metrics,
            plan_cache=self.plan_cache,
            event_logger=self.events
        )

        # 已结束执行的保留顺序
        self._finished: Deque[str] = deque()
        self._lock = asyncio.Lock()

        logger.info("Workflow engine initialized")

    # 版本管理

    async def create_version(
        self,
        workflow_id: str,
        definition: Union[WorkflowDefinition, Dict[str, Any], str],
        changelog: str = None,
        created_by: str = None
    ) -> WorkflowVersion:
        return await self.versions.create_version(workflow_id, definition, changelog, created_by)

    async def get_version(self, workflow_id: str, version: int = None) -> Optional[WorkflowVersion]:
        return await self.versions.get_version(workflow_id, version)

    async def rollback(self, workflow_id: str, target_version: int, reason: str = None) -> WorkflowVersion:
        return await self.versions.rollback(workflow_id, target_version, reason)

    async def list_versions(self, workflow_id: str) -> List[WorkflowVersion]:
        return await self.versions.list_versions(workflow_id)

    # 模板管理

    async def register_template(self, template: Union[WorkflowTemplate, Dict[str, Any], str]) -> WorkflowTemplate:
        return await self.templates.register_template(template)

    async def instantiate(
        self,
        template_id: str,
        parameters: Dict[str, Any] = None,
        workflow_id: str = None
    ) -> WorkflowVersion:
        return await self.templates.instantiate(template_id, parameters, workflow_id)

    async def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        return await self.templates.get_template(template_id)

    async def list_templates(self, category: str = None) -> List[WorkflowTemplate]:
        return await self.templates.list_templates(category)

    # 执行管理

    async def execute_workflow(
        self,
        workflow_id: str,
        inputs: Dict[str, Any] = None,
        version: int = None
    ) -> ExecutionContext:
        """
        执行工作流

        Args:
            workflow_id: 工作流ID
            inputs: 输入变量，覆盖定义中的默认变量
            version: 指定版本，缺省使用激活版本

        Returns:
            ExecutionContext: 最终状态的执行上下文，步骤失败不会抛出异常
        """
        workflow_version = await self.versions.get_version(workflow_id, version)
        if not workflow_version:
            raise NotFoundError(
                "Workflow",
                workflow_id,
                f"Workflow {workflow_id} version {version or 'active'} not found"
            )

        definition = workflow_version.definition
        context = ExecutionContext(
            execution_id=self._new_execution_id(workflow_id),
            workflow_id=workflow_id,
            version=workflow_version.version,
            variables={**definition.variables, **(inputs or {})}
        )
        context.start()

        async with self._lock:
            await self.execution_repository.save(context)

        logger.info(
            f"Starting workflow execution {context.execution_id}",
            extra={"execution_id": context.execution_id, "workflow_id": workflow_id,
                   "version": workflow_version.version}
        )
        self.events.log("workflow_started", execution_id=context.execution_id, workflow_id=workflow_id)
        self.metrics.increment(
            "workflow_executions_started",
            workflow=workflow_id,
            version=workflow_version.version
        )

        try:
            await self.scheduler.run(
                definition,
                context,
                cache_key=f"{workflow_id}:{workflow_version.version}"
            )

        except WorkflowCancelledError:
            # 取消是终止状态而不是错误，状态已由 cancel_execution 或 shutdown 设置
            logger.info(f"Workflow execution stopped after cancellation: {context.execution_id}")

        except asyncio.CancelledError:
            # 调用方任务被取消：登记为已取消并结束记录后继续传播
            if context.cancel("task cancelled"):
                logger.warning(
                    f"Workflow execution task cancelled: {context.execution_id}",
                    extra={"execution_id": context.execution_id}
                )
                self.events.log("workflow_cancelled", level=logging.WARNING, execution_id=context.execution_id)
                self.metrics.increment("workflow_executions_cancelled", workflow=workflow_id)
            await self._finish(context)
            raise

        except Exception as e:
            if context.status == ExecutionStatus.RUNNING:
                context.fail(e)
                logger.error(
                    f"Workflow execution failed: {context.execution_id}: {e}",
                    extra={"execution_id": context.execution_id},
                    exc_info=not isinstance(e, WorkflowEngineError)
                )
                self.events.log(
                    "workflow_failed",
                    level=logging.ERROR,
                    execution_id=context.execution_id,
                    error=str(e)
                )
                self.metrics.increment("workflow_executions_failed", workflow=workflow_id)

        else:
            if context.status == ExecutionStatus.RUNNING:
                context.complete()
                self.events.log("workflow_completed", execution_id=context.execution_id)
                self.metrics.increment("workflow_executions_completed", workflow=workflow_id)
                self.metrics.observe(
                    "workflow_execution_duration_ms",
                    (context.end_time - context.start_time) * 1000,
                    workflow=workflow_id
                )

        await self._finish(context)
        return context

    async def get_execution_status(self, execution_id: str) -> Optional[ExecutionContext]:
        """获取执行状态"""
        return await self.execution_repository.get(execution_id)

    async def list_executions(
        self,
        workflow_id: str = None,
        status: ExecutionStatus = None
    ) -> List[ExecutionContext]:
        return await self.execution_repository.list(workflow_id, status)

    async def cancel_execution(self, execution_id: str, reason: str = None) -> ExecutionContext:
        """取消执行，只对运行中的执行生效，不会中断正在执行的步骤"""
        context = await self.execution_repository.get(execution_id)
        if not context:
            raise NotFoundError("Execution", execution_id)

        if context.cancel(reason):
            logger.warning(
                f"Workflow execution cancelled: {execution_id}",
                extra={"execution_id": execution_id, "reason": reason}
            )
            self.events.log("workflow_cancelled", level=logging.WARNING, execution_id=execution_id)
            self.metrics.increment("workflow_executions_cancelled", workflow=context.workflow_id)

        return context

    async def get_statistics(self) -> Dict[str, int]:
        """获取统计信息"""
        executions = await self.execution_repository.list()
        return {
            "total_workflows": await self.versions.count_workflows(),
            "total_versions": await self.versions.count_versions(),
            "total_templates": await self.templates.count(),
            "active_executions": len([e for e in executions if e.status == ExecutionStatus.RUNNING]),
            "total_executions": len(executions)
        }

    async def shutdown(self):
        """强制取消所有运行中的执行并清空全部内存状态"""
        logger.info("Shutting down workflow engine")

        for context in await self.execution_repository.list(status=ExecutionStatus.RUNNING):
            context.cancel("shutdown")
            logger.warning(
                f"Workflow execution cancelled during shutdown: {context.execution_id}",
                extra={"execution_id": context.execution_id}
            )

        async with self._lock:
            await self.execution_repository.clear()
            self._finished.clear()
        await self.versions.clear()
        await self.templates.clear()
        self.plan_cache.clear()

        logger.info("Workflow engine shut down successfully")

    async def _finish(self, context: ExecutionContext):
        """登记已结束的执行，超出保留数量时清除最早的记录"""
        async with self._lock:
            if await self.execution_repository.get(context.execution_id) is not context:
                # 已被 shutdown 清除
                return

            self._finished.append(context.execution_id)
            while len(self._finished) > max(self.settings.max_finished_executions, 0):
                await self.execution_repository.delete(self._finished.popleft())

    def _new_execution_id(self, workflow_id: str) -> str:
        return f"{workflow_id}-{int(time.time() * 1000)}-{uuid4().hex[:9]}"
