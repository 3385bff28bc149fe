"""
工作流定义解析器
"""
import yaml
import json
from dataclasses import replace
from typing import Dict, Any, List, Optional, Union
from pathlib import Path

from ..models.workflow import (
    WorkflowDefinition, WorkflowStep, StepType, ConditionalBranch, RetryPolicy,
    WorkflowTemplate, TemplateParameter, ParameterType
)
from ..exceptions import ValidationError


# 原始定义中的步骤类型别名
STEP_TYPE_ALIASES = {
    "agent": StepType.TASK,
    "function": StepType.TASK,
    "parallel-marker": StepType.PARALLEL,
}


class DefinitionParser:
    """工作流定义与模板解析器"""

    def __init__(self):
        self.parsers = {
            'yaml': self._parse_yaml,
            'yml': self._parse_yaml,
            'json': self._parse_json
        }

    def parse(self, source: Union[str, Path, Dict[str, Any], WorkflowDefinition]) -> WorkflowDefinition:
        """
        解析工作流定义

        Args:
            source: 定义来源，可以是文件路径、YAML/JSON字符串、字典或已解析的定义

        Returns:
            WorkflowDefinition: 解析后的工作流定义
        """
        if isinstance(source, WorkflowDefinition):
            return source
        return self._parse_definition_dict(self._load(source))

    def parse_template(self, source: Union[str, Path, Dict[str, Any], WorkflowTemplate]) -> WorkflowTemplate:
        """解析工作流模板"""
        if isinstance(source, WorkflowTemplate):
            if isinstance(source.definition, WorkflowDefinition):
                # 模板蓝图统一保存为可替换占位符的字典
                return replace(source, definition=self.to_dict(source.definition))
            return source
        return self._parse_template_dict(self._load(source))

    def _load(self, source: Union[str, Path, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(source, dict):
            return source

        if isinstance(source, Path) or (isinstance(source, str) and '\n' not in source):
            path = Path(source)
            try:
                is_file = path.is_file()
            except OSError:
                # 过长的单行内容不是合法路径
                is_file = False
            if is_file:
                return self._load_file(path)
            if isinstance(source, Path):
                raise ValidationError(f"Definition file not found: {source}")

        if isinstance(source, str):
            return self._load_string(source)

        raise ValidationError(f"Unsupported source type: {type(source)}")

    def _load_file(self, file_path: Path) -> Dict[str, Any]:
        """加载定义文件"""
        suffix = file_path.suffix.lower().lstrip('.')
        if suffix not in self.parsers:
            raise ValidationError(f"Unsupported file format: {suffix}")

        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()

        return self._ensure_mapping(self.parsers[suffix](content))

    def _load_string(self, content: str) -> Dict[str, Any]:
        """加载定义字符串，JSON 是 YAML 的子集，先尝试 YAML"""
        try:
            data = self._parse_yaml(content)
        except ValidationError:
            data = self._parse_json(content)
        return self._ensure_mapping(data)

    def _parse_yaml(self, content: str) -> Any:
        """解析YAML格式"""
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValidationError(f"Failed to parse YAML: {e}")

    def _parse_json(self, content: str) -> Any:
        """解析JSON格式"""
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Failed to parse JSON: {e}")

    def _ensure_mapping(self, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError("Definition source must contain a mapping")
        return data

    def _parse_definition_dict(self, data: Dict[str, Any]) -> WorkflowDefinition:
        """解析字典格式的工作流定义"""
        if 'workflow' in data:
            data = data['workflow']

        steps_data = data.get('steps', [])
        if not isinstance(steps_data, list):
            raise ValidationError("Workflow 'steps' must be a list")

        retry_data = data.get('retry_policy', data.get('retryPolicy'))

        return WorkflowDefinition(
            id=str(data.get('id', '')),
            name=data.get('name', ''),
            description=data.get('description', ''),
            steps=[self._parse_step(step_data) for step_data in steps_data],
            variables=dict(data.get('variables') or {}),
            parallel_groups=[
                self._step_ids(group) for group in data.get('parallel_groups', data.get('parallelGroups')) or []
            ],
            conditional_branches=[
                self._parse_branch(branch_data)
                for branch_data in data.get('conditional_branches', data.get('conditionalBranches')) or []
            ],
            timeout=data.get('timeout'),
            retry_policy=self._parse_retry_policy(retry_data) if retry_data else None,
            metadata=dict(data.get('metadata') or {})
        )

    def _parse_step(self, data: Dict[str, Any]) -> WorkflowStep:
        """解析步骤"""
        if 'id' not in data:
            raise ValidationError("Step must include 'id'")

        raw_type = data.get('type', StepType.TASK.value)
        try:
            step_type = STEP_TYPE_ALIASES.get(raw_type) or StepType(raw_type)
        except ValueError:
            raise ValidationError(f"Unknown step type for step '{data['id']}': {raw_type}")

        target = data.get('target') or data.get('agentName') or data.get('functionName')

        return WorkflowStep(
            id=str(data['id']),
            name=data.get('name', ''),
            type=step_type,
            target=target,
            inputs=list(data.get('inputs') or []),
            outputs=list(data.get('outputs') or []),
            dependencies=self._step_ids(data.get('dependencies')),
            condition=data.get('condition'),
            timeout=data.get('timeout'),
            retryable=bool(data.get('retryable', False)),
            metadata=dict(data.get('metadata') or {})
        )

    def _parse_branch(self, data: Dict[str, Any]) -> ConditionalBranch:
        """解析条件分支"""
        if 'condition' not in data:
            raise ValidationError("Conditional branch must include 'condition'")
        return ConditionalBranch(condition=data['condition'], steps=self._step_ids(data.get('steps')))

    def _step_ids(self, values: Optional[List[Any]]) -> List[str]:
        """步骤ID引用统一为字符串，与 _parse_step 中的ID保持一致"""
        return [str(value) for value in values or []]

    def _parse_retry_policy(self, data: Dict[str, Any]) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=int(data.get('max_attempts', data.get('maxAttempts', 1))),
            backoff_ms=int(data.get('backoff_ms', data.get('backoffMs', 0))),
            backoff_multiplier=float(data.get('backoff_multiplier', data.get('backoffMultiplier', 1.0))),
            retryable_errors=list(data.get('retryable_errors', data.get('retryableErrors')) or [])
        )

    def _parse_template_dict(self, data: Dict[str, Any]) -> WorkflowTemplate:
        """解析模板"""
        if 'template' in data:
            data = data['template']

        if 'id' not in data:
            raise ValidationError("Template must include 'id'")

        definition = data.get('definition') or {}
        if isinstance(definition, WorkflowDefinition):
            definition = self.to_dict(definition)

        template = WorkflowTemplate(
            id=str(data['id']),
            name=data.get('name', ''),
            description=data.get('description', ''),
            category=data.get('category', 'general'),
            definition=definition,
            parameters=[self._parse_parameter(p) for p in data.get('parameters') or []],
            tags=list(data.get('tags') or [])
        )
        return template

    def _parse_parameter(self, data: Dict[str, Any]) -> TemplateParameter:
        """解析模板参数"""
        if 'name' not in data:
            raise ValidationError("Template parameter must include 'name'")
        try:
            param_type = ParameterType(data.get('type', ParameterType.STRING.value))
        except ValueError:
            raise ValidationError(f"Unknown parameter type for '{data['name']}': {data.get('type')}")

        return TemplateParameter(
            name=data['name'],
            type=param_type,
            required=bool(data.get('required', False)),
            default=data.get('default', data.get('defaultValue')),
            description=data.get('description'),
            validation=data.get('validation')
        )

    def to_dict(self, definition: WorkflowDefinition) -> Dict[str, Any]:
        """序列化工作流定义，可调用的条件无法序列化，保持原对象"""
        payload = {
            "id": definition.id,
            "name": definition.name,
            "description": definition.description,
            "steps": [self._step_to_dict(step) for step in definition.steps],
            "variables": definition.variables,
            "parallel_groups": [list(group) for group in definition.parallel_groups],
            "conditional_branches": [
                {"condition": branch.condition, "steps": list(branch.steps)}
                for branch in definition.conditional_branches
            ],
            "timeout": definition.timeout,
            "metadata": definition.metadata,
        }
        if definition.retry_policy:
            policy = definition.retry_policy
            payload["retry_policy"] = {
                "max_attempts": policy.max_attempts,
                "backoff_ms": policy.backoff_ms,
                "backoff_multiplier": policy.backoff_multiplier,
                "retryable_errors": list(policy.retryable_errors),
            }
        return payload

    def _step_to_dict(self, step: WorkflowStep) -> Dict[str, Any]:
        return {
            "id": step.id,
            "name": step.name,
            "type": step.type.value,
            "target": step.target,
            "inputs": list(step.inputs),
            "outputs": list(step.outputs),
            "dependencies": list(step.dependencies),
            "condition": step.condition,
            "timeout": step.timeout,
            "retryable": step.retryable,
            "metadata": step.metadata,
        }

    def serialize(self, definition: WorkflowDefinition, fmt: str = "json") -> str:
        """序列化为 JSON 或 YAML 字符串"""
        data = {"workflow": self.to_dict(definition)}
        if fmt == "json":
            return json.dumps(data, ensure_ascii=False, indent=2)
        if fmt == "yaml":
            return yaml.safe_dump(data, allow_unicode=True, sort_keys=False)
        raise ValidationError(f"Unsupported serialisation format: {fmt}")
