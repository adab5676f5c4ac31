"""
Language model adapter.

Services talk to the model through the ModelInvoker protocol so the workflow
can be driven by a scripted invoker in tests. Messages are (role, content)
tuples with roles "system", "human" and "ai".
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple, Type, TypeVar

import openai
from pydantic import BaseModel
from langchain_openai import ChatOpenAI

from app.config import settings
from app.errors import AppError, ExtractionError
from app.schemas.tools import ToolInvocation

logger = logging.getLogger(__name__)

Message = Tuple[str, str]
T = TypeVar("T", bound=BaseModel)


@dataclass
class ModelResponse:
    content: str
    tool_calls: List[ToolInvocation] = field(default_factory=list)
    usage: Dict[str, Any] = field(default_factory=dict)


class ModelInvoker(Protocol):
    async def invoke_with_tools(
        self, messages: List[Message], tools: List[dict], tool_choice: str = "auto"
    ) -> ModelResponse:
        ...

    async def invoke_structured(self, messages: List[Message], schema: Type[T]) -> T:
        ...


def create_llm(model: Optional[str] = None) -> ChatOpenAI:
    """Create OpenAI chat model instance."""
    return ChatOpenAI(
        model=model or settings.agent_model,
        temperature=settings.agent_temperature,
        api_key=settings.openai_api_key,
        timeout=settings.agent_timeout_seconds,
        max_retries=settings.agent_max_retries,
    )


def _text_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)
    return str(content or "")


class LangChainModelInvoker:
    """ModelInvoker backed by langchain_openai.ChatOpenAI."""

    def __init__(self, llm: Optional[ChatOpenAI] = None, model: Optional[str] = None):
        self.llm = llm or create_llm(model)

    async def invoke_with_tools(
        self, messages: List[Message], tools: List[dict], tool_choice: str = "auto"
    ) -> ModelResponse:
        bound = self.llm.bind_tools(tools, tool_choice=tool_choice)
        try:
            response = await bound.ainvoke(messages)
        except openai.OpenAIError as e:
            logger.error(f"Model call with tools failed: {e}", exc_info=True)
            raise AppError(502, f"Language model request failed: {e}", "invoke_with_tools")

        usage = dict(response.usage_metadata or {})
        self._log_usage("invoke_with_tools", usage)

        calls = [
            ToolInvocation(name=call["name"], args=call.get("args") or {}, id=call.get("id"))
            for call in response.tool_calls or []
        ]
        return ModelResponse(content=_text_content(response.content), tool_calls=calls, usage=usage)

    async def invoke_structured(self, messages: List[Message], schema: Type[T]) -> T:
        structured = self.llm.with_structured_output(schema, include_raw=True)
        try:
            result = await structured.ainvoke(messages)
        except openai.OpenAIError as e:
            logger.error(f"Structured model call failed: {e}", exc_info=True)
            raise AppError(502, f"Language model request failed: {e}", "invoke_structured")

        raw = result.get("raw")
        if raw is not None:
            self._log_usage("invoke_structured", dict(getattr(raw, "usage_metadata", None) or {}))

        if result.get("parsing_error") or result.get("parsed") is None:
            logger.error(f"Structured output did not match {schema.__name__}: {result.get('parsing_error')}")
            raise ExtractionError(500, f"Model returned malformed {schema.__name__} output", "invoke_structured")
        return result["parsed"]

    def _log_usage(self, operation: str, usage: Dict[str, Any]):
        if usage:
            logger.info(
                f"{operation}: {usage.get('input_tokens', 0)} input / "
                f"{usage.get('output_tokens', 0)} output tokens"
            )
