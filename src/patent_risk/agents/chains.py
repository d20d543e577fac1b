"""Reasoning provider: prompt templates and the chat model behind them."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol

import yaml
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import PromptTemplate
from langchain_openai import ChatOpenAI

from patent_risk.config import Settings
from patent_risk.models import ConversationContext
from patent_risk.utils.logging import DIM, RESET, YELLOW, get_logger

log = get_logger(__name__)

_PROMPTS_DIR = Path(__file__).parent / "prompts"


@lru_cache(maxsize=None)
def load_prompt(name: str) -> PromptTemplate:
    """Load `prompts/<name>.yaml` as a PromptTemplate."""
    path = _PROMPTS_DIR / f"{name}.yaml"
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return PromptTemplate.from_template(data["template"])


def render_prompt(name: str, **variables) -> str:
    return load_prompt(name).format(**variables)


class ReasoningProvider(Protocol):
    """Text in, text out; optionally replaying an earlier conversation first."""

    async def complete(self, prompt: str, context: ConversationContext | None = None) -> str: ...


def to_messages(prompt: str, context: ConversationContext | None = None) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    if context is not None:
        for turn in context.turns:
            if turn.role == "user":
                messages.append(HumanMessage(content=turn.content))
            else:
                messages.append(AIMessage(content=turn.content))
    messages.append(HumanMessage(content=prompt))
    return messages


class ReasoningLLM:
    """OpenAI-compatible chat model (OpenRouter by default)."""

    def __init__(self, settings: Settings, llm: ChatOpenAI | None = None) -> None:
        self._llm = llm or ChatOpenAI(
            model=settings.openrouter_model,
            api_key=settings.openrouter_api_key,
            base_url=settings.llm_base_url,
            temperature=settings.llm_temperature,
            max_tokens=8192,
        )
        self._invoke_config: dict[str, Any] = {}
        if settings.langfuse_public_key and settings.langfuse_secret_key:
            self._enable_tracing(settings)
        else:
            log.debug(f"  {DIM}Langfuse not configured, reasoning calls untraced{RESET}")

    def _enable_tracing(self, settings: Settings) -> None:
        """Attach a Langfuse callback to every `ainvoke`; a failed start leaves calls untraced."""
        try:
            from langfuse import Langfuse
            from langfuse.langchain import CallbackHandler

            Langfuse(
                public_key=settings.langfuse_public_key,
                secret_key=settings.langfuse_secret_key,
                host=settings.langfuse_base_url,
            )
            handler = CallbackHandler(public_key=settings.langfuse_public_key)
        except Exception as e:
            log.warning(f"  {YELLOW}Langfuse init failed: {e}{RESET}")
            return
        self._invoke_config = {"callbacks": [handler]}
        log.info(f"  {DIM}Langfuse tracing enabled for {settings.openrouter_model}{RESET}")

    async def complete(self, prompt: str, context: ConversationContext | None = None) -> str:
        response = await self._llm.ainvoke(to_messages(prompt, context), config=self._invoke_config)
        content = response.content
        if isinstance(content, list):
            # Some providers return content parts instead of a plain string
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return content
