"""
存储仓库接口定义
"""
from abc import ABC, abstractmethod
from typing import Optional, List, Dict

from ..models.workflow import WorkflowVersion, WorkflowTemplate
from ..models.execution import ExecutionContext, ExecutionStatus


class VersionRepository(ABC):
    """工作流版本存储仓库接口"""

    @abstractmethod
    async def append(self, version: WorkflowVersion) -> None:
        """追加版本"""
        pass

    @abstractmethod
    async def list(self, workflow_id: str) -> List[WorkflowVersion]:
        """按创建顺序列出工作流的所有版本"""
        pass

    @abstractmethod
    async def set_active(self, workflow_id: str, version: int) -> Optional[WorkflowVersion]:
        """激活指定版本并停用其他版本"""
        pass

    @abstractmethod
    async def workflow_ids(self) -> List[str]:
        """列出所有工作流ID"""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """清空存储"""
        pass


class TemplateRepository(ABC):
    """模板存储仓库接口"""

    @abstractmethod
    async def save(self, template: WorkflowTemplate) -> str:
        """保存模板"""
        pass

    @abstractmethod
    async def get(self, template_id: str) -> Optional[WorkflowTemplate]:
        """获取模板"""
        pass

    @abstractmethod
    async def list(self, category: str = None) -> List[WorkflowTemplate]:
        """列出模板"""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """清空存储"""
        pass


class ExecutionRepository(ABC):
    """执行上下文存储仓库接口"""

    @abstractmethod
    async def save(self, context: ExecutionContext) -> str:
        """保存执行上下文"""
        pass

    @abstractmethod
    async def get(self, execution_id: str) -> Optional[ExecutionContext]:
        """获取执行上下文"""
        pass

    @abstractmethod
    async def list(
        self,
        workflow_id: str = None,
        status: ExecutionStatus = None
    ) -> List[ExecutionContext]:
        """列出执行上下文"""
        pass

    @abstractmethod
    async def delete(self, execution_id: str) -> bool:
        """删除执行上下文"""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """清空存储"""
        pass


# 内存实现
class InMemoryVersionRepository(VersionRepository):
    """内存版本仓库实现"""

    def __init__(self):
        self.versions: Dict[str, List[WorkflowVersion]] = {}

    async def append(self, version: WorkflowVersion) -> None:
        self.versions.setdefault(version.workflow_id, []).append(version)

    async def list(self, workflow_id: str) -> List[WorkflowVersion]:
        return list(self.versions.get(workflow_id, []))

    async def set_active(self, workflow_id: str, version: int) -> Optional[WorkflowVersion]:
        versions = self.versions.get(workflow_id, [])
        target = next((v for v in versions if v.version == version), None)
        if target is None:
            return None
        for item in versions:
            item.is_active = item is target
        return target

    async def workflow_ids(self) -> List[str]:
        return list(self.versions.keys())

    async def clear(self) -> None:
        self.versions.clear()


class InMemoryTemplateRepository(TemplateRepository):
    """内存模板仓库实现"""

    def __init__(self):
        self.templates: Dict[str, WorkflowTemplate] = {}

    async def save(self, template: WorkflowTemplate) -> str:
        self.templates[template.id] = template
        return template.id

    async def get(self, template_id: str) -> Optional[WorkflowTemplate]:
        return self.templates.get(template_id)

    async def list(self, category: str = None) -> List[WorkflowTemplate]:
        templates = list(self.templates.values())
        if category:
            return [t for t in templates if t.category == category]
        return templates

    async def clear(self) -> None:
        self.templates.clear()


class InMemoryExecutionRepository(ExecutionRepository):
    """内存执行仓库实现"""

    def __init__(self):
        self.executions: Dict[str, ExecutionContext] = {}

    async def save(self, context: ExecutionContext) -> str:
        self.executions[context.execution_id] = context
        return context.execution_id

    async def get(self, execution_id: str) -> Optional[ExecutionContext]:
        return self.executions.get(execution_id)

    async def list(
        self,
        workflow_id: str = None,
        status: ExecutionStatus = None
    ) -> List[ExecutionContext]:
        results = []
        for context in self.executions.values():
            if workflow_id and context.workflow_id != workflow_id:
                continue
            if status and context.status != status:
                continue
            results.append(context)
        return results

    async def delete(self, execution_id: str) -> bool:
        if execution_id in self.executions:
            del self.executions[execution_id]
            return True
        return False

    async def clear(self) -> None:
        self.executions.clear()
