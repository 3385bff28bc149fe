"""
工作流定义模型
"""
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Union, Callable, Awaitable
from enum import Enum
import time


# 条件谓词: (variables, step_results) -> bool
Predicate = Callable[[Dict[str, Any], Dict[str, Any]], Union[bool, Awaitable[bool]]]
ConditionRef = Union[str, Predicate]


class StepType(Enum):
    """步骤类型"""
    TASK = "task"
    TRANSFORM = "transform"
    CONDITION = "condition"
    PARALLEL = "parallel"


class ParameterType(Enum):
    """模板参数类型"""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


@dataclass
class RetryPolicy:
    """重试策略（仅作为元数据提供给具体执行器）"""
    max_attempts: int = 1
    backoff_ms: int = 0
    backoff_multiplier: float = 1.0
    retryable_errors: List[str] = field(default_factory=list)


@dataclass
class WorkflowStep:
    """工作流步骤"""
    id: str
    name: str = ""
    type: StepType = StepType.TASK
    target: Optional[str] = None  # 执行器或函数名称
    inputs: List[str] = field(default_factory=list)  # 输入变量名
    outputs: List[str] = field(default_factory=list)  # 输出变量名
    dependencies: List[str] = field(default_factory=list)  # 依赖步骤ID
    condition: Optional[ConditionRef] = None
    timeout: Optional[float] = None  # 超时时间（秒），仅供执行器参考
    retryable: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name:
            self.name = self.id
        if isinstance(self.type, str):
            self.type = StepType(self.type)


@dataclass
class ConditionalBranch:
    """条件分支：条件不满足时分支内的所有步骤被跳过"""
    condition: ConditionRef
    steps: List[str] = field(default_factory=list)


@dataclass
class WorkflowDefinition:
    """工作流定义"""
    id: str
    name: str = ""
    description: str = ""
    steps: List[WorkflowStep] = field(default_factory=list)
    variables: Dict[str, Any] = field(default_factory=dict)  # 默认变量
    parallel_groups: List[List[str]] = field(default_factory=list)
    conditional_branches: List[ConditionalBranch] = field(default_factory=list)
    timeout: Optional[float] = None
    retry_policy: Optional[RetryPolicy] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        """根据ID获取步骤"""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]

    def dependents_of(self, step_id: str) -> List[WorkflowStep]:
        """获取依赖于指定步骤的下游步骤"""
        return [step for step in self.steps if step_id in step.dependencies]

    def branches_for(self, step_id: str) -> List[ConditionalBranch]:
        return [branch for branch in self.conditional_branches if step_id in branch.steps]

    def validate(self) -> List[str]:
        """验证工作流定义的结构完整性"""
        errors = []

        # 检查步骤ID唯一性
        step_ids = self.step_ids()
        known = set(step_ids)
        if len(step_ids) != len(known):
            duplicates = sorted({s for s in step_ids if step_ids.count(s) > 1})
            errors.append(f"Duplicate step IDs found: {duplicates}")

        # 检查依赖引用
        for step in self.steps:
            for dep_id in step.dependencies:
                if dep_id not in known:
                    errors.append(f"Step '{step.id}' depends on unknown step '{dep_id}'")

        # 检查并行组引用
        for index, group in enumerate(self.parallel_groups):
            for step_id in group:
                if step_id not in known:
                    errors.append(f"Parallel group {index} references unknown step '{step_id}'")

        # 检查条件分支引用
        for index, branch in enumerate(self.conditional_branches):
            for step_id in branch.steps:
                if step_id not in known:
                    errors.append(f"Conditional branch {index} references unknown step '{step_id}'")

        return errors


@dataclass
class WorkflowVersion:
    """工作流版本快照"""
    version: int
    workflow_id: str
    definition: WorkflowDefinition
    created_at: float = field(default_factory=time.time)
    created_by: Optional[str] = None
    changelog: Optional[str] = None
    is_active: bool = False


@dataclass
class TemplateParameter:
    """模板参数"""
    name: str
    type: ParameterType = ParameterType.STRING
    required: bool = False
    default: Any = None
    description: Optional[str] = None
    validation: Optional[Dict[str, Any]] = None  # JSON Schema 片段

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = ParameterType(self.type)


@dataclass
class WorkflowTemplate:
    """工作流模板，definition 为包含 ${name} 占位符的序列化定义"""
    id: str
    name: str = ""
    description: str = ""
    category: str = "general"
    definition: Dict[str, Any] = field(default_factory=dict)
    parameters: List[TemplateParameter] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def get_parameter(self, name: str) -> Optional[TemplateParameter]:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None
