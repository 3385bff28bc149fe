"""
工作流模板注册表
"""
import asyncio
import copy
import json
import logging
import re
import time
from typing import Dict, Any, Optional, List, Union

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from ..models.workflow import WorkflowDefinition, WorkflowTemplate, TemplateParameter, ParameterType, WorkflowVersion
from ..exceptions import ValidationError, NotFoundError
from ..monitoring import SafeMetrics
from ..storage.repository import TemplateRepository, InMemoryTemplateRepository
from .parser import DefinitionParser
from .versioning import VersionStore


logger = logging.getLogger(__name__)


PLACEHOLDER_PATTERN = re.compile(r"\$\{([^{}]+)\}")

# 占位符独占整个字符串时按原类型替换
WHOLE_PLACEHOLDER_PATTERN = re.compile(r"^\$\{([^{}]+)\}$")


def _matches_type(value: Any, param_type: ParameterType) -> bool:
    if param_type == ParameterType.ARRAY:
        return isinstance(value, (list, tuple))
    if param_type == ParameterType.STRING:
        return isinstance(value, str)
    if param_type == ParameterType.BOOLEAN:
        return isinstance(value, bool)
    if param_type == ParameterType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if param_type == ParameterType.OBJECT:
        return isinstance(value, dict)
    return False


def _stringify(value: Any) -> str:
    """嵌入到较长字符串中的参数值统一转为文本"""
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None:
        return json.dumps(value)
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False, default=str)


class TemplateRegistry:
    """模板注册表：校验参数、替换占位符并通过版本存储生成新版本"""

    def __init__(
        self,
        version_store: VersionStore,
        repository: TemplateRepository = None,
        metrics: SafeMetrics = None,
        parser: DefinitionParser = None
    ):
        self.version_store = version_store
        self.repository = repository or InMemoryTemplateRepository()
        self.metrics = metrics or SafeMetrics()
        self.parser = parser or DefinitionParser()
        self._validators_cache: Dict[str, Draft7Validator] = {}
        self._lock = asyncio.Lock()

    async def register_template(self, template: Union[WorkflowTemplate, Dict[str, Any], str]) -> WorkflowTemplate:
        """注册模板，相同ID直接覆盖"""
        template = self.parser.parse_template(template)

        async with self._lock:
            existing = await self.repository.get(template.id)
            if existing:
                template.created_at = existing.created_at
                template.updated_at = time.time()
            await self.repository.save(template)

        logger.info(
            f"Template registered: {template.id}",
            extra={"template_id": template.id, "category": template.category}
        )
        self.metrics.increment(
            "workflow_templates_registered",
            template=template.id,
            category=template.category
        )
        return template

    async def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        return await self.repository.get(template_id)

    async def list_templates(self, category: str = None) -> List[WorkflowTemplate]:
        return await self.repository.list(category)

    async def count(self) -> int:
        return len(await self.repository.list())

    async def clear(self):
        async with self._lock:
            await self.repository.clear()

    async def instantiate(
        self,
        template_id: str,
        parameters: Dict[str, Any] = None,
        workflow_id: str = None
    ) -> WorkflowVersion:
        """
        根据模板创建新的工作流版本

        Args:
            template_id: 模板ID
            parameters: 模板参数
            workflow_id: 目标工作流ID，缺省为 "{template_id}-{毫秒时间戳}"

        Returns:
            WorkflowVersion: 新创建并激活的版本
        """
        template = await self.repository.get(template_id)
        if not template:
            raise NotFoundError("Template", template_id)

        parameters = dict(parameters or {})
        self.validate_parameters(template, parameters)

        values = {
            p.name: p.default
            for p in template.parameters
            if p.name not in parameters and p.default is not None
        }
        values.update(parameters)

        workflow_id = workflow_id or f"{template.id}-{int(time.time() * 1000)}"

        blueprint = template.definition
        if isinstance(blueprint, WorkflowDefinition):
            blueprint = self.parser.to_dict(blueprint)
        if not isinstance(blueprint, dict):
            raise ValidationError(f"Template {template_id} definition must be a mapping")
        if 'workflow' in blueprint:
            blueprint = blueprint['workflow']

        definition = self.apply_parameters(blueprint, values)
        definition['id'] = workflow_id

        version = await self.version_store.create_version(
            workflow_id,
            definition,
            changelog=f"Created from template: {template_id}"
        )

        logger.info(
            f"Instantiated template {template_id} as {workflow_id} v{version.version}",
            extra={"template_id": template_id, "workflow_id": workflow_id}
        )
        return version

    def validate_parameters(self, template: WorkflowTemplate, parameters: Dict[str, Any]):
        """校验模板参数，失败时抛出 ValidationError"""
        for param in template.parameters:
            if param.name not in parameters or parameters[param.name] is None:
                if param.required:
                    raise ValidationError(f"Required parameter '{param.name}' is missing")
                continue

            value = parameters[param.name]
            if not _matches_type(value, param.type):
                if param.type == ParameterType.ARRAY:
                    raise ValidationError(f"Parameter '{param.name}' must be an array")
                raise ValidationError(
                    f"Parameter '{param.name}' must be of type {param.type.value}, "
                    f"got {type(value).__name__}"
                )

            if param.validation:
                errors = self._validate_schema(param, value)
                if errors:
                    raise ValidationError(f"Parameter '{param.name}' is invalid", errors)

    def _validate_schema(self, param: TemplateParameter, value: Any) -> List[str]:
        """使用 JSON Schema 校验参数值"""
        schema_key = json.dumps(param.validation, sort_keys=True)
        if schema_key not in self._validators_cache:
            try:
                Draft7Validator.check_schema(param.validation)
            except SchemaError as e:
                return [f"Invalid validation schema: {e.message}"]
            self._validators_cache[schema_key] = Draft7Validator(param.validation)

        validator = self._validators_cache[schema_key]
        return [error.message for error in validator.iter_errors(value)]

    def apply_parameters(self, blueprint: Any, values: Dict[str, Any]) -> Any:
        """深度替换蓝图中所有 ${name} 占位符，返回新对象，不修改模板"""
        return self._substitute(copy.deepcopy(blueprint), values)

    def _substitute(self, node: Any, values: Dict[str, Any]) -> Any:
        if isinstance(node, dict):
            return {
                self._substitute_text(key, values) if isinstance(key, str) else key:
                    self._substitute(value, values)
                for key, value in node.items()
            }
        if isinstance(node, list):
            return [self._substitute(item, values) for item in node]
        if isinstance(node, str):
            whole = WHOLE_PLACEHOLDER_PATTERN.match(node)
            if whole and whole.group(1) in values:
                return copy.deepcopy(values[whole.group(1)])
            return self._substitute_text(node, values)
        return node

    def _substitute_text(self, text: str, values: Dict[str, Any]) -> str:
        def replace(match):
            name = match.group(1)
            if name not in values:
                return match.group(0)
            return _stringify(values[name])

        return PLACEHOLDER_PATTERN.sub(replace, text)
