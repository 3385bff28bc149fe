"""
工作流版本存储
"""
import asyncio
import copy
import logging
from typing import Dict, Any, Optional, List, Union

from ..models.workflow import WorkflowDefinition, WorkflowVersion
from ..exceptions import ValidationError, NotFoundError
from ..monitoring import SafeMetrics
from ..storage.repository import VersionRepository, InMemoryVersionRepository
from .parser import DefinitionParser


logger = logging.getLogger(__name__)


class VersionStore:
    """管理每个工作流ID下不可变的编号版本，负责激活与回滚"""

    def __init__(
        self,
        repository: VersionRepository = None,
        metrics: SafeMetrics = None,
        parser: DefinitionParser = None
    ):
        self.repository = repository or InMemoryVersionRepository()
        self.metrics = metrics or SafeMetrics()
        self.parser = parser or DefinitionParser()
        self._lock = asyncio.Lock()

    async def create_version(
        self,
        workflow_id: str,
        definition: Union[WorkflowDefinition, Dict[str, Any], str],
        changelog: str = None,
        created_by: str = None
    ) -> WorkflowVersion:
        """创建并激活新版本"""
        # 版本保存独立快照，调用方之后修改原对象不影响历史
        definition = copy.deepcopy(self.parser.parse(definition))

        # 验证结构完整性，失败时不创建任何版本
        errors = definition.validate()
        if errors:
            raise ValidationError(f"Workflow {workflow_id} validation failed", errors)

        async with self._lock:
            existing = await self.repository.list(workflow_id)
            version = WorkflowVersion(
                version=len(existing) + 1,
                workflow_id=workflow_id,
                definition=definition,
                created_by=created_by,
                changelog=changelog
            )
            await self.repository.append(version)
            await self.repository.set_active(workflow_id, version.version)

        logger.info(
            f"Created workflow version {workflow_id} v{version.version}",
            extra={"workflow_id": workflow_id, "version": version.version, "changelog": changelog}
        )
        self.metrics.increment("workflow_versions_created", workflow=workflow_id)

        return version

    async def get_version(self, workflow_id: str, version: int = None) -> Optional[WorkflowVersion]:
        """获取版本，未指定版本号时返回当前激活版本"""
        versions = await self.repository.list(workflow_id)
        if version is None:
            return next((v for v in versions if v.is_active), None)
        return next((v for v in versions if v.version == version), None)

    async def rollback(self, workflow_id: str, target_version: int, reason: str = None) -> WorkflowVersion:
        """回滚到指定版本，只移动激活指针，不修改历史"""
        async with self._lock:
            versions = await self.repository.list(workflow_id)
            if not versions:
                raise NotFoundError("Workflow", workflow_id)

            if not any(v.version == target_version for v in versions):
                raise NotFoundError(
                    "Version",
                    f"{workflow_id}@{target_version}",
                    f"Version {target_version} not found for workflow {workflow_id}"
                )

            target = await self.repository.set_active(workflow_id, target_version)

        logger.warning(
            f"Workflow {workflow_id} rolled back to v{target_version}",
            extra={"workflow_id": workflow_id, "target_version": target_version, "reason": reason}
        )
        self.metrics.increment(
            "workflow_rollbacks",
            workflow=workflow_id,
            target_version=target_version
        )

        return target

    async def list_versions(self, workflow_id: str) -> List[WorkflowVersion]:
        """按创建顺序列出版本"""
        return await self.repository.list(workflow_id)

    async def count_workflows(self) -> int:
        return len(await self.repository.workflow_ids())

    async def count_versions(self) -> int:
        total = 0
        for workflow_id in await self.repository.workflow_ids():
            total += len(await self.repository.list(workflow_id))
        return total

    async def clear(self):
        async with self._lock:
            await self.repository.clear()
