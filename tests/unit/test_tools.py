"""
Tests for the tool catalog and executor implementations.
"""

import pytest
from dealscout.errors import ToolExecutionError
from dealscout.models import ToolExecutionResult, ToolSchema
from dealscout.tools import (
    CallableExecutor,
    FunctionExecutor,
    NoExecutor,
    ToolExecutor,
    ToolRegistry,
    default_schemas,
    split_list,
)

CATALOG = [
    "get_person",
    "get_company",
    "score_candidate",
    "bulk_like",
    "bulk_dislike",
    "create_shortlist",
    "get_learned_weights",
    "switch_persona",
]


class TestToolRegistry:
    """The static tool catalog."""

    @pytest.fixture
    def registry(self) -> ToolRegistry:
        return ToolRegistry()

    def test_default_catalog(self, registry):
        assert registry.names() == CATALOG
        assert len(registry) == 8
        assert "bulk_like" in registry
        assert "delete_everything" not in registry

    def test_required_arguments(self, registry):
        assert registry.get("bulk_like").required == ["entity_ids", "datapoints"]
        assert registry.get("get_learned_weights").required == []
        assert registry.get("missing") is None

    def test_switch_persona_enumerates_personas(self):
        registry = ToolRegistry(default_schemas(["early", "custom"]))
        schema = registry.get("switch_persona")
        assert schema.parameters["persona_id"].enum == ["early", "custom"]

    def test_to_native_function_format(self, registry):
        native = registry.to_native()
        assert len(native) == 8
        get_person = native[0]
        assert get_person["type"] == "function"
        assert get_person["function"]["name"] == "get_person"
        params = get_person["function"]["parameters"]
        assert params["type"] == "object"
        assert params["required"] == ["person_id"]
        assert params["properties"]["person_id"]["type"] == "string"
        assert "enum" not in params["properties"]["person_id"]

    def test_describe_lists_every_tool(self, registry):
        lines = registry.describe().splitlines()
        assert len(lines) == 8
        assert lines[0] == "- get_person: Get detailed information about a person by their ID"

    def test_duplicate_names_rejected(self):
        schema = ToolSchema(name="x", description="x")
        with pytest.raises(ValueError):
            ToolRegistry([schema, schema])

    def test_schemas_are_immutable(self, registry):
        with pytest.raises(Exception):
            registry.get("get_person").name = "other"


class TestExecutorContract:
    """Test that all executor implementations follow the same contract."""

    @pytest.fixture(params=["no", "callable", "function"])
    def executor(self, request) -> ToolExecutor:
        if request.param == "no":
            return NoExecutor()
        if request.param == "callable":
            return CallableExecutor({"get_person": lambda args, cred: {"id": args["person_id"]}})
        return FunctionExecutor(lambda name, args, cred: {"tool": name})

    def test_implements_interface(self, executor):
        assert isinstance(executor, ToolExecutor)

    def test_returns_execution_result(self, executor):
        result = executor.execute("get_person", {"person_id": "per_1"}, "cred")
        assert isinstance(result, ToolExecutionResult)
        assert result.tool_name == "get_person"

    def test_executor_is_abstract(self):
        with pytest.raises(TypeError, match="Can't instantiate abstract class"):
            ToolExecutor()


class TestNoExecutor:
    def test_always_fails_with_message(self):
        result = NoExecutor().execute("get_person", {}, None)
        assert result.success is False
        assert "No tool executor is configured" in result.error


class TestCallableExecutor:
    def test_handler_receives_arguments_and_credential(self):
        seen = {}

        def handler(args, credential):
            seen.update(args=args, credential=credential)
            return [1, 2]

        executor = CallableExecutor({"create_shortlist": handler})
        result = executor.execute("create_shortlist", {"name": "Q3"}, "tok")
        assert seen == {"args": {"name": "Q3"}, "credential": "tok"}
        assert result.success is True
        assert result.data == [1, 2]

    def test_unknown_tool(self):
        result = CallableExecutor().execute("get_person", {}, None)
        assert result.success is False
        assert result.error == "Unknown tool: get_person"

    def test_tool_execution_error_becomes_failure(self):
        def handler(args, credential):
            raise ToolExecutionError("person not found")

        result = CallableExecutor({"get_person": handler}).execute("get_person", {}, None)
        assert result.success is False
        assert result.error == "person not found"

    def test_unexpected_exception_becomes_failure(self):
        def handler(args, credential):
            return args["missing"]

        result = CallableExecutor({"get_person": handler}).execute("get_person", {}, None)
        assert result.success is False
        assert "missing" in result.error

    def test_result_objects_pass_through(self):
        expected = ToolExecutionResult(tool_name="get_person", success=False, error="rate limited")
        executor = CallableExecutor({"get_person": lambda a, c: expected})
        assert executor.execute("get_person", {}, None) is expected

    def test_register_rejects_non_callable(self):
        with pytest.raises(ValueError):
            CallableExecutor().register("get_person", "not_a_function")


class TestSplitList:
    def test_comma_string(self):
        assert split_list("per_1, per_2 ,,per_3") == ["per_1", "per_2", "per_3"]

    def test_list(self):
        assert split_list(["a", " b "]) == ["a", "b"]

    def test_none_and_scalar(self):
        assert split_list(None) == []
        assert split_list(7) == ["7"]


class TestSerialization:
    def test_success_serializes_data(self):
        result = ToolExecutionResult(tool_name="get_company", success=True, data={"employees": 40})
        assert result.serialize() == 'Tool result for get_company: {"employees": 40}'

    def test_failure_serializes_error(self):
        result = ToolExecutionResult(tool_name="get_company", success=False, error="timeout")
        assert result.serialize() == "Tool get_company failed: timeout"
