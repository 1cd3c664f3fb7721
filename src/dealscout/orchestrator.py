"""
The bounded tool-calling loop.

A request is drafted, the model answers, and any tool it asks for is run by
the injected executor; the result goes back into the conversation and the
model answers again. The loop is capped at ``max_steps`` model calls, plus one
forced "final analysis" call if the model still wants tools at the end.
"""

import json
import time
from typing import Callable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from .models import (
    ASSISTANT_ROLE,
    SYSTEM_ROLE,
    USER_ROLE,
    ChatMessage,
    CompletionOptions,
    CompletionResult,
    ToolExecutionResult,
    ToolInvocation,
)
from .parsers import extract_invocations, strip_markup
from .prompts import FALLBACK_ANSWER, FINAL_ANALYSIS_INSTRUCTION, build_system_prompt
from .session import InferenceSession
from .tools import NoExecutor, ToolExecutor, ToolRegistry


class ToolRun(BaseModel):
    invocation: ToolInvocation
    result: ToolExecutionResult
    duration_ms: float = 0.0


class AgentRun(BaseModel):
    """Outcome of one orchestrated request."""

    answer: str
    tool_trace: List[ToolRun] = Field(default_factory=list)
    model_calls: int = 0
    budget_exhausted: bool = False
    final: bool = True
    messages: List[ChatMessage] = Field(default_factory=list)
    stats: List[CompletionResult] = Field(default_factory=list)


def render_invocations(invocations: List[ToolInvocation]) -> str:
    """Text stand-in for an assistant turn that only contained native tool calls."""
    return "\n".join(
        f"<tool>{inv.name}</tool>\n<args>{json.dumps(inv.arguments)}</args>"
        for inv in invocations
    )


class ToolCallingOrchestrator:
    """Lets the model pull in external facts through declared tools.

    Parameters
    ----------
    session : InferenceSession
        Session used for every model call.
    registry : ToolRegistry, optional
        Catalog of tools offered to the model. Defaults to the built-in catalog.
    executor : ToolExecutor, optional
        Runs the requested tools. Defaults to ``NoExecutor``.
    max_steps : int
        Maximum number of regular model calls per request.

    Notes
    -----
    Subclasses can override ``_before_model_call``, ``_after_model_call`` and
    ``_after_tool_call`` to observe or adjust a run.
    """

    MAX_STEPS = 3

    def __init__(
        self,
        session: InferenceSession,
        registry: Optional[ToolRegistry] = None,
        executor: Optional[ToolExecutor] = None,
        max_steps: Optional[int] = None,
        options: Optional[CompletionOptions] = None,
    ):
        self.session = session
        self.registry = registry if registry is not None else ToolRegistry()
        self.executor = executor if executor is not None else NoExecutor()
        self.max_steps = max_steps or self.MAX_STEPS
        self.options = options

    def build_messages(
        self,
        question: str,
        context: str = "",
        history: Optional[List[ChatMessage]] = None,
        persona_prompt: Optional[str] = None,
    ) -> List[ChatMessage]:
        system = build_system_prompt(
            context=context,
            catalog=self.registry.describe() if len(self.registry) else None,
            persona_prompt=persona_prompt,
        )
        messages = [ChatMessage(role=SYSTEM_ROLE, content=system)]
        messages.extend(history or [])
        messages.append(ChatMessage(role=USER_ROLE, content=question))
        return messages

    def run(
        self,
        question: Optional[str] = None,
        context: str = "",
        credential: Optional[str] = None,
        on_token: Optional[Callable[[str], None]] = None,
        messages: Optional[List[ChatMessage]] = None,
        persona_prompt: Optional[str] = None,
    ) -> AgentRun:
        """Answers ``question``, running tools as the model requests them.

        Either ``question`` or a prepared ``messages`` list must be given.
        Tool failures never abort the run; their messages are shown to the model.
        """
        if messages is None:
            if question is None:
                raise ValueError("Either question or messages is required")
            messages = self.build_messages(question, context, persona_prompt=persona_prompt)
        conversation = list(messages)
        trace: List[ToolRun] = []
        stats: List[CompletionResult] = []

        for step in range(self.max_steps):
            tools = self.registry.to_native() if step == 0 and len(self.registry) else None
            result = self._call_model(conversation, tools, on_token)
            stats.append(result)
            if not result.final:
                return self._finish(result.text, conversation, trace, stats, final=False)

            invocations = extract_invocations(result.text, result.tool_invocations)
            if not invocations:
                return self._finish(result.text, conversation, trace, stats)

            logger.info(
                f"Step {step + 1}: model requested {', '.join(i.name for i in invocations)}"
            )
            conversation.append(
                ChatMessage(
                    role=ASSISTANT_ROLE,
                    content=result.text or render_invocations(invocations),
                )
            )
            for invocation in invocations:
                run = self._execute(invocation, credential)
                trace.append(run)
                self._after_tool_call(run)
                conversation.append(ChatMessage(role=USER_ROLE, content=run.result.serialize()))

        logger.warning(
            f"Tool step budget of {self.max_steps} exhausted; forcing final analysis"
        )
        conversation.append(ChatMessage(role=USER_ROLE, content=FINAL_ANALYSIS_INSTRUCTION))
        result = self._call_model(conversation, None, on_token)
        stats.append(result)
        return self._finish(
            result.text, conversation, trace, stats, final=result.final, exhausted=True
        )

    def _call_model(self, conversation, tools, on_token) -> CompletionResult:
        self._before_model_call(conversation)
        result = self.session.complete(
            conversation, options=self.options, tools=tools, on_token=on_token
        )
        self._after_model_call(result)
        return result

    def _execute(self, invocation: ToolInvocation, credential: Optional[str]) -> ToolRun:
        start = time.perf_counter()
        if invocation.name not in self.registry:
            result = ToolExecutionResult(
                tool_name=invocation.name,
                success=False,
                error=f"Unknown tool '{invocation.name}'. Available: {', '.join(self.registry.names())}",
            )
        else:
            try:
                result = self.executor.execute(invocation.name, invocation.arguments, credential)
            except Exception as e:
                logger.warning(f"Tool {invocation.name} failed: {e}")
                result = ToolExecutionResult(
                    tool_name=invocation.name, success=False, error=str(e) or type(e).__name__
                )
        return ToolRun(
            invocation=invocation,
            result=result,
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    def _finish(self, text, conversation, trace, stats, final=True, exhausted=False) -> AgentRun:
        answer = strip_markup(text)
        if not answer:
            answer = self._fallback_answer(trace)
        conversation.append(ChatMessage(role=ASSISTANT_ROLE, content=answer))
        return AgentRun(
            answer=answer,
            tool_trace=trace,
            model_calls=len(stats),
            budget_exhausted=exhausted,
            final=final,
            messages=conversation,
            stats=stats,
        )

    def _fallback_answer(self, trace: List[ToolRun]) -> str:
        succeeded = [run.invocation.name for run in trace if run.result.success]
        if succeeded:
            return f"Retrieved data with {', '.join(succeeded)} but could not summarize it. Please try again."
        return FALLBACK_ANSWER

    def _before_model_call(self, conversation: List[ChatMessage]) -> None:
        """Hook called before each model call."""
        pass

    def _after_model_call(self, result: CompletionResult) -> None:
        """Hook called after each model call."""
        pass

    def _after_tool_call(self, run: ToolRun) -> None:
        """Hook called after each tool execution."""
        pass
