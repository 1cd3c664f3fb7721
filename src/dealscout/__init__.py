"""
The main entrypoint for the DealScout package.

This module contains the DealScout class, which wires the extensible pillars
together: the inference session, the tool-calling orchestrator, the preference
engine, the interaction memory and the store behind them.
"""

from concurrent.futures import Future
from typing import Any, Callable, Dict, Iterable, Optional, Union

from loguru import logger

from .backends import InferenceBackend, create_backend
from .config import Settings, get_settings
from .errors import UnknownPersonaError
from .log import configure_logging
from .memory import InteractionMemory
from .models import (
    Action,
    Candidate,
    EntityType,
    FeatureSnapshot,
    InteractionRecord,
    MatchResult,
    Persona,
    ToolExecutionResult,
)
from .orchestrator import AgentRun, ToolCallingOrchestrator
from .preferences import PreferenceEngine
from .prompts import (
    ParsedAnalysis,
    build_context,
    build_follow_up_messages,
    build_meeting_prep_messages,
    build_summary_messages,
    format_candidate,
    parse_analysis,
)
from .session import InferenceSession
from .store import SQLite, InMemory, Store
from .tools import (
    FunctionExecutor,
    NoExecutor,
    ToolExecutor,
    ToolRegistry,
    default_schemas,
    split_list,
)

__all__ = [
    "DealScout",
    "InferenceSession",
    "ToolCallingOrchestrator",
    "PreferenceEngine",
    "InteractionMemory",
    "ToolRegistry",
    "Settings",
]


def _entity_type_of(entity_id: str) -> EntityType:
    return EntityType.COMPANY if entity_id.startswith("com_") else EntityType.PERSON


class DealScout:
    """
    The main class for the DealScout deal-sourcing assistant.

    It composes the injected pillars and keeps local state in step with the
    side effects the model triggers through tools. Every pillar has a default,
    so ``DealScout()`` works out of the box against a local Ollama model.
    """

    def __init__(
        self,
        session: Optional[InferenceSession] = None,
        store: Optional[Store] = None,
        executor: Optional[ToolExecutor] = None,
        engine: Optional[PreferenceEngine] = None,
        memory: Optional[InteractionMemory] = None,
        registry: Optional[ToolRegistry] = None,
        settings: Optional[Settings] = None,
        backend: Optional[InferenceBackend] = None,
        setup_logging: bool = False,
    ) -> None:
        """
        Initialize DealScout with configurable pillars.

        Parameters
        ----------
        session : InferenceSession, optional
            Session driving the local model. Defaults to a new session over
            ``backend``.
        store : Store, optional
            Persistence for personas, learned weights and interactions.
            Defaults to ``SQLite(settings.db_path)`` when a path is configured,
            otherwise ``InMemory()``.
        executor : ToolExecutor, optional
            External collaborator that runs tools. Defaults to ``NoExecutor()``.
        engine : PreferenceEngine, optional
            Defaults to an engine over ``store``.
        memory : InteractionMemory, optional
            Defaults to a memory over ``store`` sized from settings.
        registry : ToolRegistry, optional
            Tool catalog. Defaults to the built-in catalog, with the
            ``switch_persona`` enum listing the engine's personas.
        settings : Settings, optional
            Defaults to ``get_settings()``.
        backend : InferenceBackend, optional
            Used only when ``session`` is not given. Defaults to the backend
            named by ``settings.backend``.
        setup_logging : bool
            Install a stderr log sink at ``settings.log_level``.

        Examples
        --------
        Basic usage with defaults:

        >>> scout = DealScout()

        Offline, with scripted answers:

        >>> from dealscout.backends import Echo
        >>> scout = DealScout(backend=Echo(responses=["Looks strong."]))
        """
        self.settings = settings or get_settings()
        if setup_logging:
            configure_logging(self.settings.log_level)

        if store is not None:
            self.store = store
        elif self.settings.db_path:
            self.store = SQLite(self.settings.db_path)
        else:
            self.store = InMemory()

        self.session = session or InferenceSession(
            backend or create_backend(self.settings), self.settings
        )
        self.engine = engine or PreferenceEngine(store=self.store, settings=self.settings)
        self.memory = memory or InteractionMemory(
            store=self.store,
            capacity=self.settings.memory_capacity,
            conversation_capacity=self.settings.conversation_capacity,
        )
        if registry is None:
            registry = ToolRegistry(default_schemas([p.id for p in self.engine.personas()]))
        self.registry = registry
        self.executor = executor or NoExecutor()
        self.orchestrator = ToolCallingOrchestrator(
            self.session,
            registry=self.registry,
            executor=FunctionExecutor(self.execute_tool),
            max_steps=self.settings.max_steps,
        )

    # --- Lifecycle ---

    def warm_up(self, progress_callback: Optional[Callable[[float], None]] = None) -> Future:
        """Downloads and loads the model in the background."""
        return self.session.warm_up(progress_callback)

    def close(self) -> None:
        self.session.destroy()

    # --- Tools ---

    def execute_tool(
        self, name: str, arguments: Dict[str, Any], credential: Optional[str] = None
    ) -> ToolExecutionResult:
        """Runs a tool through the executor and mirrors its effect locally."""
        result = self.executor.execute(name, arguments, credential)
        if result.success:
            self._mirror_tool_effect(name, arguments)
        return result

    def _mirror_tool_effect(self, name: str, arguments: Dict[str, Any]) -> None:
        if name in ("bulk_like", "bulk_dislike"):
            is_like = name == "bulk_like"
            datapoints = split_list(arguments.get("datapoints"))
            for entity_id in split_list(arguments.get("entity_ids")):
                self.memory.record(
                    entity_id,
                    _entity_type_of(entity_id),
                    Action.LIKE if is_like else Action.DISLIKE,
                    FeatureSnapshot(tags=datapoints),
                )
                self.engine.record_feedback(None, datapoints, is_like)
        elif name == "switch_persona":
            persona_id = arguments.get("persona_id")
            try:
                self.engine.switch_persona(persona_id)
            except UnknownPersonaError:
                logger.warning(f"Executor switched to unknown persona {persona_id!r}")

    # --- Context ---

    def build_context(self, candidate: Optional[Candidate] = None) -> str:
        """Persona, preference, entity and conversation context for prompts."""
        entity_context = ""
        if candidate is not None:
            result = self.engine.score(candidate)
            entity_context = (
                f"{format_candidate(candidate)}\n"
                f"Persona fit: {result.score}/100 ({result.label.value}); "
                + "; ".join(result.reasons)
            )
        return build_context(
            persona_summary=self.engine.persona_summary(),
            preference_summary=self.memory.preference_summary(),
            entity_context=entity_context,
            conversation=self.memory.recent_conversation(
                entity_id=candidate.id if candidate else None
            ),
        )

    # --- Agent ---

    def ask(
        self,
        question: str,
        candidate: Optional[Candidate] = None,
        credential: Optional[str] = None,
        on_token: Optional[Callable[[str], None]] = None,
    ) -> AgentRun:
        """Answers a free-form question, letting the model call tools."""
        entity_id = candidate.id if candidate else None
        self.memory.set_current_entity(entity_id)
        run = self.orchestrator.run(
            question,
            context=self.build_context(candidate),
            credential=credential,
            on_token=on_token,
            persona_prompt=self.engine.active_persona.system_prompt or None,
        )
        self.memory.add_turn("user", question, entity_id=entity_id)
        for tool_run in run.tool_trace:
            self.memory.add_turn(
                "tool",
                tool_run.result.serialize(),
                entity_id=entity_id,
                tool_name=tool_run.invocation.name,
            )
        self.memory.add_turn("assistant", run.answer, entity_id=entity_id)
        return run

    def analyze_candidate(
        self, candidate: Candidate, on_token: Optional[Callable[[str], None]] = None
    ) -> ParsedAnalysis:
        """Sectioned summary, strengths and risks for a candidate."""
        self.memory.record(candidate.id, candidate.entity_type, Action.VIEW, candidate.features)
        self.memory.set_current_entity(candidate.id)
        messages = build_summary_messages(candidate, self.build_context(candidate))
        result = self.session.complete(messages, on_token=on_token)
        self.memory.add_turn("assistant", result.text, entity_id=candidate.id)
        return parse_analysis(result.text)

    def ask_follow_up(
        self,
        candidate: Candidate,
        previous_analysis: str,
        question: str,
        on_token: Optional[Callable[[str], None]] = None,
    ) -> str:
        messages = build_follow_up_messages(
            candidate, previous_analysis, question, self.build_context(candidate)
        )
        result = self.session.complete(messages, on_token=on_token)
        self.memory.add_turn("user", question, entity_id=candidate.id)
        self.memory.add_turn("assistant", result.text, entity_id=candidate.id)
        return result.text

    def prepare_meeting(
        self, candidate: Candidate, on_token: Optional[Callable[[str], None]] = None
    ) -> ParsedAnalysis:
        messages = build_meeting_prep_messages(candidate, self.build_context(candidate))
        result = self.session.complete(messages, on_token=on_token)
        return parse_analysis(result.text)

    # --- Feedback and scoring ---

    def record_action(
        self, candidate: Candidate, action: Union[Action, str]
    ) -> InteractionRecord:
        """Logs an interaction; likes and dislikes also train the active persona."""
        action = Action(action)
        record = self.memory.record(
            candidate.id, candidate.entity_type, action, candidate.features
        )
        if action != Action.VIEW:
            self.engine.record_feedback(None, candidate.features.tags, action == Action.LIKE)
        return record

    def score(
        self,
        target: Union[Candidate, FeatureSnapshot, Iterable[str]],
        persona_id: Optional[str] = None,
    ) -> MatchResult:
        return self.engine.score(target, persona_id)

    def switch_persona(self, persona_id: str) -> Persona:
        return self.engine.switch_persona(persona_id)
