"""
工作流定义解析器测试
"""
import json

import pytest
import yaml

from automation_engine.core import DefinitionParser
from automation_engine.exceptions import ValidationError
from automation_engine.models import StepType, ParameterType


YAML_DEFINITION = """
workflow:
  id: content-pipeline
  name: Content Pipeline
  variables:
    language: en
  steps:
    - id: research
      type: agent
      agentName: researcher
      inputs: [topic]
      outputs: [notes]
    - id: draft
      type: function
      functionName: writer
      inputs: [notes, language]
      outputs: [draft]
      dependencies: [research]
      condition: has_notes
  parallelGroups:
    - [research]
  conditionalBranches:
    - condition: is_premium
      steps: [draft]
  retryPolicy:
    maxAttempts: 3
    backoffMs: 500
    backoffMultiplier: 2
"""


class TestDefinitionParser:
    """解析器测试"""

    @pytest.fixture
    def parser(self):
        return DefinitionParser()

    def test_parse_yaml_string(self, parser):
        definition = parser.parse(YAML_DEFINITION)

        assert definition.id == "content-pipeline"
        assert definition.variables == {"language": "en"}
        assert definition.step_ids() == ["research", "draft"]

        research = definition.get_step("research")
        assert research.type == StepType.TASK
        assert research.target == "researcher"
        assert research.name == "research"

        draft = definition.get_step("draft")
        assert draft.target == "writer"
        assert draft.dependencies == ["research"]
        assert draft.condition == "has_notes"

        assert definition.parallel_groups == [["research"]]
        assert definition.conditional_branches[0].condition == "is_premium"
        assert definition.retry_policy.max_attempts == 3
        assert definition.retry_policy.backoff_ms == 500
        assert definition.retry_policy.backoff_multiplier == 2.0
        assert definition.validate() == []
        assert [s.id for s in definition.dependents_of("research")] == ["draft"]

    def test_numeric_step_ids(self, parser):
        """数字步骤ID及其所有引用统一解析为字符串"""
        definition = parser.parse(
            "id: numeric\n"
            "steps:\n"
            "  - id: 1\n"
            "  - id: 2\n"
            "    dependencies: [1]\n"
            "  - id: 3\n"
            "    dependencies: [1, 2]\n"
            "parallel_groups:\n"
            "  - [1]\n"
            "conditional_branches:\n"
            "  - condition: always\n"
            "    steps: [3]\n"
        )

        assert definition.step_ids() == ["1", "2", "3"]
        assert definition.get_step("3").dependencies == ["1", "2"]
        assert definition.parallel_groups == [["1"]]
        assert definition.conditional_branches[0].steps == ["3"]
        assert definition.validate() == []

    def test_parse_json_string(self, parser):
        source = json.dumps({"id": "j", "steps": [{"id": "s", "type": "transform", "target": "t"}]})

        definition = parser.parse(source)

        assert definition.get_step("s").type == StepType.TRANSFORM

    def test_parse_file(self, parser, tmp_path):
        path = tmp_path / "workflow.yaml"
        path.write_text(YAML_DEFINITION, encoding="utf-8")

        assert parser.parse(path).id == "content-pipeline"
        assert parser.parse(str(path)).id == "content-pipeline"

    def test_unsupported_file_format(self, parser, tmp_path):
        path = tmp_path / "workflow.txt"
        path.write_text("id: x", encoding="utf-8")

        with pytest.raises(ValidationError, match="Unsupported file format"):
            parser.parse(path)

    @pytest.mark.parametrize("source, message", [
        ("steps: [unclosed", "Failed to parse"),
        ("- just\n- a list\n", "must contain a mapping"),
        ({"id": "x", "steps": {"id": "s"}}, "must be a list"),
        ({"id": "x", "steps": [{"name": "no id"}]}, "must include 'id'"),
        ({"id": "x", "steps": [{"id": "s", "type": "teleport"}]}, "Unknown step type"),
        ({"id": "x", "conditional_branches": [{"steps": []}]}, "must include 'condition'"),
    ])
    def test_invalid_sources(self, parser, source, message):
        with pytest.raises(ValidationError, match=message):
            parser.parse(source)

    def test_parse_template(self, parser, sample_template):
        template = parser.parse_template({"template": sample_template})

        assert template.id == "social-post"
        assert template.category == "marketing"
        platform = template.get_parameter("platform")
        assert platform.required
        assert platform.validation == {"enum": ["twitter", "linkedin"]}
        assert template.get_parameter("max_length").default == 280
        assert template.get_parameter("hashtags").type == ParameterType.ARRAY

    def test_parse_template_default_value_alias(self, parser):
        template = parser.parse_template({
            "id": "t",
            "parameters": [{"name": "count", "type": "number", "defaultValue": 3}]
        })

        assert template.get_parameter("count").default == 3

    def test_unknown_parameter_type(self, parser):
        with pytest.raises(ValidationError, match="Unknown parameter type"):
            parser.parse_template({"id": "t", "parameters": [{"name": "p", "type": "date"}]})

    @pytest.mark.parametrize("fmt, loader", [("json", json.loads), ("yaml", yaml.safe_load)])
    def test_serialize(self, parser, fmt, loader):
        definition = parser.parse(YAML_DEFINITION)

        payload = loader(parser.serialize(definition, fmt))

        assert payload["workflow"]["id"] == "content-pipeline"
        assert payload["workflow"]["retry_policy"]["max_attempts"] == 3
        restored = parser.parse(payload)
        assert restored.step_ids() == definition.step_ids()
        assert restored.get_step("draft").target == "writer"

    def test_serialize_unknown_format(self, parser):
        definition = parser.parse({"id": "x"})

        with pytest.raises(ValidationError):
            parser.serialize(definition, "xml")
