"""Tool catalog and the executor contract for agentic lookups."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterator, List, Optional

from loguru import logger

from .errors import ToolExecutionError
from .models import ToolExecutionResult, ToolParameter, ToolSchema
from .recipes import DEFAULT_PERSONAS


def split_list(value: Any) -> List[str]:
    """Accepts a list or a comma-separated string, as small models emit either."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = value
    else:
        items = [value]
    return [str(item).strip() for item in items if str(item).strip()]


def default_schemas(persona_ids: Optional[List[str]] = None) -> List[ToolSchema]:
    persona_ids = persona_ids or list(DEFAULT_PERSONAS)
    ids = ToolParameter(type="string", description="Comma-separated list of entity IDs")
    note = ToolParameter(type="string", description="Optional note explaining the decision")
    return [
        ToolSchema(
            name="get_person",
            description="Get detailed information about a person by their ID",
            parameters={
                "person_id": ToolParameter(description="The person ID (e.g., per_xxx)")
            },
            required=["person_id"],
        ),
        ToolSchema(
            name="get_company",
            description="Get detailed information about a company by its ID",
            parameters={
                "company_id": ToolParameter(description="The company ID (e.g., com_xxx)")
            },
            required=["company_id"],
        ),
        ToolSchema(
            name="score_candidate",
            description="Score a candidate against the current persona recipe",
            parameters={
                "highlights": ToolParameter(
                    description="Comma-separated list of candidate highlights"
                )
            },
            required=["highlights"],
        ),
        ToolSchema(
            name="bulk_like",
            description="Like multiple entities with datapoints",
            parameters={
                "entity_ids": ids,
                "datapoints": ToolParameter(
                    description="Comma-separated list of datapoints justifying the like"
                ),
                "note": note,
            },
            required=["entity_ids", "datapoints"],
        ),
        ToolSchema(
            name="bulk_dislike",
            description="Dislike multiple entities with datapoints",
            parameters={
                "entity_ids": ids,
                "datapoints": ToolParameter(
                    description="Comma-separated list of datapoints justifying the dislike"
                ),
                "note": note,
            },
            required=["entity_ids", "datapoints"],
        ),
        ToolSchema(
            name="create_shortlist",
            description="Create a named shortlist from a set of entities",
            parameters={
                "name": ToolParameter(description="Name of the shortlist"),
                "entity_ids": ids,
            },
            required=["name", "entity_ids"],
        ),
        ToolSchema(
            name="get_learned_weights",
            description="Get the strongest learned preference weights for the active persona",
            parameters={
                "limit": ToolParameter(
                    type="integer", description="Maximum number of weights to return"
                )
            },
        ),
        ToolSchema(
            name="switch_persona",
            description="Switch the active investment persona",
            parameters={
                "persona_id": ToolParameter(
                    description="The persona to activate", enum=list(persona_ids)
                )
            },
            required=["persona_id"],
        ),
    ]


class ToolRegistry:
    """Static catalog of the tools the model may request.

    The registry only declares tools; running them is the job of a
    ``ToolExecutor`` supplied by the embedding application.
    """

    def __init__(self, schemas: Optional[List[ToolSchema]] = None):
        self._schemas: Dict[str, ToolSchema] = {}
        for schema in schemas if schemas is not None else default_schemas():
            if schema.name in self._schemas:
                raise ValueError(f"Duplicate tool name: {schema.name}")
            self._schemas[schema.name] = schema

    def get(self, name: str) -> Optional[ToolSchema]:
        return self._schemas.get(name)

    def names(self) -> List[str]:
        return list(self._schemas)

    def schemas(self) -> List[ToolSchema]:
        return list(self._schemas.values())

    def to_native(self) -> List[Dict[str, Any]]:
        """Function-calling schemas for engines that support native tools."""
        return [schema.to_native() for schema in self._schemas.values()]

    def describe(self) -> str:
        """One ``- name: description`` line per tool, for system prompts."""
        return "\n".join(
            f"- {s.name}: {s.description}" for s in self._schemas.values()
        )

    def __contains__(self, name: str) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[ToolSchema]:
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)


class ToolExecutor(ABC):
    """Interface for the external collaborator that actually runs tools."""

    @abstractmethod
    def execute(
        self, name: str, arguments: Dict[str, Any], credential: Optional[str] = None
    ) -> ToolExecutionResult:
        """Runs a tool and reports its outcome.

        Parameters
        ----------
        name : str
            Tool name from the catalog.
        arguments : Dict[str, Any]
            Arguments as requested by the model.
        credential : str, optional
            Opaque bearer token passed through untouched.

        Returns
        -------
        ToolExecutionResult
            Success with data, or failure with a message.
        """
        pass


class NoExecutor(ToolExecutor):
    """Default executor: no data source is wired up."""

    def execute(self, name, arguments, credential=None):
        return ToolExecutionResult(
            tool_name=name,
            success=False,
            error="No tool executor is configured; answer from the available context.",
        )


class CallableExecutor(ToolExecutor):
    """Dispatches each tool name to a registered Python callable.

    Handlers are called as ``handler(arguments, credential)``. A plain return
    value becomes the result's ``data``; a returned ``ToolExecutionResult`` is
    passed through.
    """

    def __init__(self, handlers: Optional[Dict[str, Callable]] = None):
        self._handlers: Dict[str, Callable] = {}
        for name, handler in (handlers or {}).items():
            self.register(name, handler)

    def register(self, name: str, handler: Callable) -> None:
        if not callable(handler):
            raise ValueError(f"Handler for '{name}' is not callable")
        self._handlers[name] = handler

    def execute(self, name, arguments, credential=None):
        handler = self._handlers.get(name)
        if handler is None:
            return ToolExecutionResult(
                tool_name=name, success=False, error=f"Unknown tool: {name}"
            )
        try:
            outcome = handler(arguments, credential)
        except ToolExecutionError as e:
            return ToolExecutionResult(tool_name=name, success=False, error=e.message)
        except Exception as e:
            logger.exception(f"Tool {name} raised")
            return ToolExecutionResult(tool_name=name, success=False, error=str(e))
        if isinstance(outcome, ToolExecutionResult):
            return outcome
        return ToolExecutionResult(tool_name=name, success=True, data=outcome)


class FunctionExecutor(ToolExecutor):
    """Adapts a single ``fn(name, arguments, credential)`` function."""

    def __init__(self, fn: Callable[[str, Dict[str, Any], Optional[str]], Any]):
        self.fn = fn

    def execute(self, name, arguments, credential=None):
        outcome = self.fn(name, arguments, credential)
        if isinstance(outcome, ToolExecutionResult):
            return outcome
        return ToolExecutionResult(tool_name=name, success=True, data=outcome)
