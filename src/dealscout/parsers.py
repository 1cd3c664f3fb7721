"""
Normalization of tool invocations produced by local models.

Engines with native function calling return structured calls; smaller models
often write the call into the response body instead. Both paths end up as the
same ``ToolInvocation`` list.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from .models import ToolInvocation

TOOL_CALL_BLOCK = re.compile(r"<tool_call>\s*(.*?)\s*</tool_call>", re.DOTALL)
TOOL_TAG = re.compile(
    r"<tool>\s*([\w\-]+)\s*</tool>(?:\s*<args>(.*?)</args>)?", re.DOTALL
)
_decoder = json.JSONDecoder()


def _coerce_arguments(raw: Any) -> Dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return _parse_key_values(raw)
        return parsed if isinstance(parsed, dict) else {}
    logger.warning(f"Ignoring tool arguments of unexpected type {type(raw).__name__}")
    return {}


def _parse_key_values(raw: str) -> Dict[str, Any]:
    """Parses ``key=value, key2=value2`` argument bodies."""
    args = {}
    for pair in raw.split(","):
        key, sep, value = pair.partition("=")
        key, value = key.strip(), value.strip().strip("\"'")
        if sep and key and value:
            args[key] = value
    return args


def _from_mapping(obj: Dict[str, Any]) -> Optional[ToolInvocation]:
    if isinstance(obj.get("function"), dict):
        obj = obj["function"]
    name = obj.get("name") or obj.get("tool")
    if not isinstance(name, str) or not name:
        return None
    raw_args = obj.get("arguments", obj.get("args", obj.get("parameters")))
    return ToolInvocation(name=name, arguments=_coerce_arguments(raw_args))


def parse_native(calls: Optional[Iterable[Any]]) -> List[ToolInvocation]:
    """Normalizes structured tool calls returned by an engine.

    Parameters
    ----------
    calls : Iterable
        Items shaped as ``ToolInvocation``, ``{"name", "arguments"}`` or
        ``{"function": {"name", "arguments"}}``. Arguments may be a dict or a
        JSON string.

    Returns
    -------
    List[ToolInvocation]
        Valid invocations in their original order. Malformed items are dropped.
    """
    invocations = []
    for call in calls or []:
        if isinstance(call, ToolInvocation):
            invocations.append(call)
            continue
        if not isinstance(call, dict):
            logger.warning(f"Dropping malformed native tool call: {call!r}")
            continue
        invocation = _from_mapping(call)
        if invocation is None:
            logger.warning(f"Dropping native tool call without a name: {call!r}")
            continue
        invocations.append(invocation)
    return invocations


def _json_objects(text: str) -> Iterable[Dict[str, Any]]:
    idx = text.find("{")
    while idx != -1:
        try:
            obj, end = _decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            idx = text.find("{", idx + 1)
            continue
        if isinstance(obj, dict):
            yield obj
        idx = text.find("{", end)


def parse_embedded_markup(text: str) -> List[ToolInvocation]:
    """Finds tool invocations written into a response body.

    Recognized forms, tried in this order:

    - ``<tool_call>{"name": ..., "arguments": {...}}</tool_call>``
    - ``<tool>name</tool><args>{...}</args>`` (args may also be ``k=v, k2=v2``)
    - a bare JSON object carrying a ``"tool"`` key
    """
    if not text:
        return []

    invocations = []
    for body in TOOL_CALL_BLOCK.findall(text):
        obj = next(iter(_json_objects(body)), None)
        invocation = _from_mapping(obj) if obj else None
        if invocation:
            invocations.append(invocation)
    if invocations:
        return invocations

    for name, args in TOOL_TAG.findall(text):
        invocations.append(ToolInvocation(name=name, arguments=_coerce_arguments(args)))
    if invocations:
        return invocations

    for obj in _json_objects(text):
        invocation = _from_mapping(obj) if isinstance(obj.get("tool"), str) else None
        if invocation:
            invocations.append(invocation)
    return invocations


def strip_markup(text: str) -> str:
    """Removes tool-call markup so only prose remains."""
    text = TOOL_CALL_BLOCK.sub("", text or "")
    text = TOOL_TAG.sub("", text)
    return text.strip()


def extract_invocations(
    text: str, native: Optional[Iterable[Any]] = None
) -> List[ToolInvocation]:
    """Native invocations win; embedded markup is the fallback."""
    invocations = parse_native(native)
    if invocations:
        return invocations
    return parse_embedded_markup(text)
