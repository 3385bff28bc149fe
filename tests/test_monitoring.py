"""
指标、事件日志与配置测试
"""
import logging
from unittest.mock import MagicMock

import pytest

from automation_engine.config import EngineSettings, configure_logging
from automation_engine.core import WorkflowEngine
from automation_engine.models import ExecutionStatus
from automation_engine.monitoring import SafeMetrics, InMemoryMetricsSink, EventLogger, MetricsSink


def test_in_memory_sink_counts_by_labels():
    sink = InMemoryMetricsSink()
    metrics = SafeMetrics(sink)

    metrics.increment("runs", workflow="a")
    metrics.increment("runs", workflow="a")
    metrics.increment("runs", workflow="b", version=2)
    metrics.observe("latency", 12.5, workflow="a")

    assert sink.get_counter("runs", {"workflow": "a"}) == 2
    assert sink.get_counter("runs", {"workflow": "b", "version": "2"}) == 1
    assert sink.get_counter("runs") == 3
    assert sink.get_counter("unknown") == 0
    assert sink.get_histogram("latency", {"workflow": "a"}) == [12.5]


def test_safe_metrics_swallows_sink_errors(caplog):
    sink = MagicMock(spec=MetricsSink)
    sink.increment_counter.side_effect = RuntimeError("sink down")
    sink.record_histogram.side_effect = RuntimeError("sink down")
    metrics = SafeMetrics(sink)

    with caplog.at_level(logging.WARNING, logger="automation_engine.monitoring"):
        metrics.increment("runs")
        metrics.observe("latency", 1.0)

    assert "Failed to emit counter runs" in caplog.text
    assert "Failed to emit histogram latency" in caplog.text


def test_safe_metrics_disabled():
    sink = MagicMock(spec=MetricsSink)
    metrics = SafeMetrics(sink, enabled=False)

    metrics.increment("runs")
    metrics.observe("latency", 1.0)

    sink.increment_counter.assert_not_called()
    sink.record_histogram.assert_not_called()


def test_event_logger_attaches_payload(caplog):
    events = EventLogger()

    with caplog.at_level(logging.INFO, logger="automation_engine.events"):
        events.log("workflow_started", execution_id="e1")

    record = caplog.records[-1]
    assert record.getMessage() == "workflow_started"
    assert record.event == "workflow_started"
    assert record.execution_id == "e1"


@pytest.mark.asyncio
async def test_failing_sink_does_not_fail_workflow(executor, simple_workflow):
    sink = MagicMock(spec=MetricsSink)
    sink.increment_counter.side_effect = RuntimeError("sink down")
    sink.record_histogram.side_effect = RuntimeError("sink down")
    engine = WorkflowEngine(executor=executor, metrics_sink=sink)
    await engine.create_version("wf1", simple_workflow)

    context = await engine.execute_workflow("wf1")

    assert context.status == ExecutionStatus.COMPLETED
    assert context.step_results["x"] == 42


class TestEngineSettings:
    """配置加载测试"""

    def test_defaults(self, monkeypatch):
        for name in ("WORKFLOW_LOG_LEVEL", "WORKFLOW_METRICS_ENABLED",
                     "WORKFLOW_MAX_FINISHED_EXECUTIONS", "WORKFLOW_PLAN_CACHE_SIZE"):
            monkeypatch.delenv(name, raising=False)

        settings = EngineSettings.from_env(load_env_file=False)

        assert settings == EngineSettings()
        assert settings.max_finished_executions == 1000
        assert settings.plan_cache_size == 128

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_LOG_LEVEL", "debug")
        monkeypatch.setenv("WORKFLOW_METRICS_ENABLED", "false")
        monkeypatch.setenv("WORKFLOW_MAX_FINISHED_EXECUTIONS", "5")
        monkeypatch.setenv("WORKFLOW_PLAN_CACHE_SIZE", "7")

        settings = EngineSettings.from_env(load_env_file=False)

        assert settings.log_level == "DEBUG"
        assert settings.metrics_enabled is False
        assert settings.max_finished_executions == 5
        assert settings.plan_cache_size == 7

    def test_from_env_file(self, monkeypatch, tmp_path):
        monkeypatch.delenv("WORKFLOW_PLAN_CACHE_SIZE", raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("WORKFLOW_PLAN_CACHE_SIZE=3\n", encoding="utf-8")

        settings = EngineSettings.from_env()

        assert settings.plan_cache_size == 3

    def test_configure_logging(self, monkeypatch):
        basic_config = MagicMock()
        monkeypatch.setattr(logging, "basicConfig", basic_config)

        configure_logging(EngineSettings(log_level="WARNING"))

        kwargs = basic_config.call_args.kwargs
        assert kwargs["level"] == logging.WARNING
        assert "%(levelname)s" in kwargs["format"]
