"""
工作流引擎使用示例
"""
import asyncio

from automation_engine import WorkflowEngine, FunctionStepExecutor, ConditionRegistry
from automation_engine.config import EngineSettings, configure_logging
from automation_engine.monitoring import InMemoryMetricsSink


CONTENT_PIPELINE = """
workflow:
  id: content-pipeline
  name: Content Pipeline
  variables:
    language: en
  steps:
    - id: research
      type: task
      target: research
      inputs: [topic]
      outputs: [notes]
    - id: keywords
      type: task
      target: keywords
      inputs: [topic]
      outputs: [keywords]
    - id: draft
      type: transform
      target: draft
      inputs: [notes, keywords, language]
      outputs: [title, body]
      dependencies: [research, keywords]
    - id: review
      type: task
      target: review
      inputs: [body]
      outputs: [approved]
      dependencies: [draft]
      condition: needs_review
  parallel_groups:
    - [research, keywords]
"""


NEWSLETTER_TEMPLATE = {
    "id": "newsletter",
    "name": "Newsletter",
    "category": "marketing",
    "parameters": [
        {"name": "audience", "type": "string", "required": True},
        {"name": "sections", "type": "number", "default": 3,
         "validation": {"minimum": 1, "maximum": 10}}
    ],
    "definition": {
        "name": "Newsletter for ${audience}",
        "variables": {"audience": "${audience}", "sections": "${sections}"},
        "steps": [
            {"id": "outline", "target": "research", "inputs": ["audience"], "outputs": ["notes"]}
        ]
    }
}


def build_executor() -> FunctionStepExecutor:
    """注册示例步骤"""
    executor = FunctionStepExecutor()

    async def research(inputs):
        await asyncio.sleep(0.1)
        return f"notes about {inputs.get('topic') or inputs.get('audience')}"

    async def keywords(inputs):
        await asyncio.sleep(0.05)
        return ["automation", "workflow", str(inputs["topic"])]

    def draft(inputs):
        return {
            "title": f"[{inputs['language']}] {inputs['keywords'][-1].title()}",
            "body": f"{inputs['notes']} ({', '.join(inputs['keywords'])})"
        }

    executor.register("research", research)
    executor.register("keywords", keywords)
    executor.register("draft", draft)
    executor.register("review", lambda inputs: len(inputs["body"]) < 200)
    return executor


async def example_dag_workflow(engine: WorkflowEngine):
    """DAG工作流示例"""
    print("\n=== DAG 工作流示例 ===")

    version = await engine.create_version("content-pipeline", CONTENT_PIPELINE, changelog="initial")
    print(f"创建工作流版本: {version.workflow_id} v{version.version}")

    context = await engine.execute_workflow("content-pipeline", {"topic": "pipelines", "review": True})
    print(f"执行状态: {context.status.value}")
    for key, value in context.step_results.items():
        print(f"  {key}: {value}")


async def example_versions(engine: WorkflowEngine):
    """版本与回滚示例"""
    print("\n=== 版本管理示例 ===")

    current = await engine.get_version("content-pipeline")
    definition = engine.parser.parse(engine.parser.to_dict(current.definition))
    definition.variables = {"language": "zh"}
    await engine.create_version("content-pipeline", definition, changelog="switch language")

    context = await engine.execute_workflow("content-pipeline", {"topic": "versions"})
    print(f"v2 标题: {context.step_results['title']}")

    await engine.rollback("content-pipeline", 1, reason="example rollback")
    context = await engine.execute_workflow("content-pipeline", {"topic": "versions"})
    print(f"回滚后标题: {context.step_results['title']}")

    for version in await engine.list_versions("content-pipeline"):
        marker = "*" if version.is_active else " "
        print(f" {marker} v{version.version}: {version.changelog}")


async def example_template(engine: WorkflowEngine):
    """模板实例化示例"""
    print("\n=== 模板示例 ===")

    await engine.register_template(NEWSLETTER_TEMPLATE)
    version = await engine.instantiate("newsletter", {"audience": "developers"}, workflow_id="dev-newsletter")
    print(f"实例化: {version.definition.name}, 变量: {version.definition.variables}")

    context = await engine.execute_workflow("dev-newsletter")
    print(f"执行结果: {context.step_results}")


async def example_cancellation(engine: WorkflowEngine, executor: FunctionStepExecutor):
    """取消执行示例"""
    print("\n=== 取消示例 ===")

    async def long_running(inputs, cancellation):
        await cancellation.wait()
        return "stopped"

    executor.register("long", long_running, wants_cancellation=True)
    await engine.create_version("long", {"id": "long", "steps": [
        {"id": "wait", "target": "long", "outputs": ["result"]},
        {"id": "after", "target": "review", "inputs": ["result"], "dependencies": ["wait"]}
    ]})

    task = asyncio.create_task(engine.execute_workflow("long"))
    await asyncio.sleep(0.1)

    for context in await engine.list_executions(workflow_id="long"):
        await engine.cancel_execution(context.execution_id, reason="example")

    context = await task
    print(f"执行状态: {context.status.value}, 结果: {context.step_results}")


async def main():
    """主函数"""
    settings = EngineSettings.from_env()
    configure_logging(settings)

    executor = build_executor()
    conditions = ConditionRegistry()
    conditions.register("needs_review", lambda variables, results: bool(variables.get("review")))

    sink = InMemoryMetricsSink()
    engine = WorkflowEngine(executor=executor, conditions=conditions, metrics_sink=sink, settings=settings)

    try:
        await example_dag_workflow(engine)
        await example_versions(engine)
        await example_template(engine)
        await example_cancellation(engine, executor)

        print("\n=== 统计信息 ===")
        print(await engine.get_statistics())
        print(f"完成的执行: {sink.get_counter('workflow_executions_completed')}")
    finally:
        await engine.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
