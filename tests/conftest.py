"""
Pytest 配置和公共 fixtures
"""
import pytest

from automation_engine.config import EngineSettings
from automation_engine.core import WorkflowEngine, FunctionStepExecutor, ConditionRegistry
from automation_engine.monitoring import InMemoryMetricsSink


@pytest.fixture
def metrics_sink() -> InMemoryMetricsSink:
    """内存指标接收器"""
    return InMemoryMetricsSink()


@pytest.fixture
def executor() -> FunctionStepExecutor:
    """注册了常用目标函数的执行器"""
    executor = FunctionStepExecutor()
    executor.register("echo", lambda inputs: dict(inputs))
    executor.register("constant", lambda inputs: 42)
    executor.register("upper", lambda inputs: str(inputs.get("text")).upper())

    def explode(inputs):
        raise RuntimeError("boom")

    executor.register("explode", explode)
    return executor


@pytest.fixture
def conditions() -> ConditionRegistry:
    """条件谓词注册表"""
    registry = ConditionRegistry()
    registry.register("always", lambda variables, results: True)
    registry.register("never", lambda variables, results: False)
    registry.register("is_premium", lambda variables, results: variables.get("tier") == "premium")
    return registry


@pytest.fixture
def engine(executor, conditions, metrics_sink) -> WorkflowEngine:
    """创建使用内存存储的工作流引擎"""
    return WorkflowEngine(
        executor=executor,
        conditions=conditions,
        metrics_sink=metrics_sink,
        settings=EngineSettings()
    )


@pytest.fixture
def simple_workflow() -> dict:
    """单步骤工作流"""
    return {
        "id": "wf1",
        "name": "Simple",
        "steps": [
            {"id": "s1", "type": "task", "target": "constant", "outputs": ["x"]}
        ]
    }


@pytest.fixture
def chain_workflow() -> dict:
    """乱序声明的 A -> B -> C 链"""
    return {
        "workflow": {
            "id": "chain",
            "name": "Chain",
            "steps": [
                {"id": "C", "target": "echo", "inputs": ["b"], "outputs": ["c"], "dependencies": ["B"]},
                {"id": "A", "target": "upper", "inputs": ["text"], "outputs": ["a"]},
                {"id": "B", "target": "echo", "inputs": ["a"], "outputs": ["b"], "dependencies": ["A"]}
            ],
            "variables": {"text": "hello"}
        }
    }


@pytest.fixture
def sample_template() -> dict:
    """示例模板"""
    return {
        "id": "social-post",
        "name": "Social Post",
        "category": "marketing",
        "parameters": [
            {"name": "platform", "type": "string", "required": True,
             "validation": {"enum": ["twitter", "linkedin"]}},
            {"name": "max_length", "type": "number", "default": 280},
            {"name": "hashtags", "type": "array"}
        ],
        "definition": {
            "name": "Post to ${platform}",
            "steps": [
                {
                    "id": "compose",
                    "type": "task",
                    "target": "echo",
                    "inputs": ["topic"],
                    "outputs": ["draft"],
                    "metadata": {"limit": "${max_length}", "label": "limit ${max_length}",
                                 "${platform}_tags": "${hashtags}"}
                }
            ],
            "variables": {"platform": "${platform}", "unknown": "${not_a_param}"}
        }
    }
