"""
模型测试
"""
import pytest

from automation_engine.models import (
    ExecutionContext, ExecutionStatus, StepStatus, WorkflowDefinition, WorkflowStep,
    ConditionalBranch, StepType
)


class TestExecutionContext:
    """执行上下文状态转换"""

    @pytest.fixture
    def context(self):
        return ExecutionContext(execution_id="e1", workflow_id="wf", version=1, variables={"a": 1})

    def test_resolve_input(self, context):
        context.step_results["a"] = 2
        context.step_results["b"] = 0

        assert context.resolve_input("a") == 1
        assert context.resolve_input("b") == 0
        assert context.resolve_input("c") is None

    @pytest.mark.asyncio
    async def test_cancel_only_running(self, context):
        assert context.cancel() is False
        assert context.status == ExecutionStatus.PENDING

        context.start()
        assert context.cancel("stop") is True
        assert context.status == ExecutionStatus.CANCELLED
        assert context.is_terminal()
        assert context.cancellation.reason == "stop"

        # 再次取消不改变结束时间
        end_time = context.end_time
        assert context.cancel() is False
        assert context.end_time == end_time

    def test_fail_and_to_dict(self, context):
        context.start()
        record = context.step_execution("s1")
        record.start({"a": 1})
        record.fail(ValueError("bad input"))
        context.fail(ValueError("bad input"))

        payload = context.to_dict()

        assert payload["status"] == "failed"
        assert payload["error"] == "bad input"
        assert payload["duration"] is not None
        assert payload["steps"]["s1"]["status"] == StepStatus.FAILED.value
        assert payload["steps"]["s1"]["error"] == "ValueError: bad input"


class TestWorkflowDefinition:
    """定义结构验证"""

    def test_valid_definition(self):
        definition = WorkflowDefinition(
            id="wf",
            steps=[WorkflowStep(id="a"), WorkflowStep(id="b", dependencies=["a"], type="transform")],
            parallel_groups=[["a"]],
            conditional_branches=[ConditionalBranch(condition="always", steps=["b"])]
        )

        assert definition.validate() == []
        assert definition.get_step("b").type == StepType.TRANSFORM
        assert definition.get_step("missing") is None
        assert definition.branches_for("b")[0].condition == "always"

    def test_dangling_branch_reference(self):
        definition = WorkflowDefinition(
            id="wf",
            steps=[WorkflowStep(id="a")],
            conditional_branches=[ConditionalBranch(condition="always", steps=["ghost"])]
        )

        errors = definition.validate()

        assert errors == ["Conditional branch 0 references unknown step 'ghost'"]
