"""Ordered JSON extraction strategies for free-text model output.

Models wrap JSON in prose or code fences often enough that every stage tries a
fixed list of strategies in order. Each strategy returns `Parsed` or `Failed`
and never raises, so the chain can be tested without any provider call.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from patent_risk.errors import UnparsableResponseError

_OBJECT_BLOCK = re.compile(r"\{[\s\S]*\}")
_ARRAY_BLOCK = re.compile(r"\[[\s\S]*\]")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


@dataclass(frozen=True)
class Parsed:
    value: Any
    strategy: str


@dataclass(frozen=True)
class Failed:
    reason: str


ParseResult = Parsed | Failed
Strategy = Callable[[str], ParseResult]


def _loads(raw: str, strategy: str) -> ParseResult:
    try:
        return Parsed(json.loads(raw), strategy)
    except json.JSONDecodeError as e:
        return Failed(f"{strategy}: {e.msg} at char {e.pos}")


def whole_text(text: str) -> ParseResult:
    return _loads(text.strip(), "whole_text")


def object_block(text: str) -> ParseResult:
    match = _OBJECT_BLOCK.search(text)
    if match is None:
        return Failed("object_block: no {...} block")
    return _loads(match.group(0), "object_block")


def array_block(text: str) -> ParseResult:
    match = _ARRAY_BLOCK.search(text)
    if match is None:
        return Failed("array_block: no [...] block")
    return _loads(match.group(0), "array_block")


def brace_span(text: str) -> ParseResult:
    """Substring from the first `{` to the last `}`, with trailing commas dropped."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return Failed("brace_span: no braces")
    return _loads(_TRAILING_COMMA.sub(r"\1", text[start : end + 1]), "brace_span")


ANALYSIS_STRATEGIES: tuple[Strategy, ...] = (whole_text, object_block)
SCORING_STRATEGIES: tuple[Strategy, ...] = (whole_text, object_block, brace_span)
CLAIM_LIST_STRATEGIES: tuple[Strategy, ...] = (whole_text, array_block)


def try_strategies(text: str, strategies: Sequence[Strategy]) -> ParseResult:
    """Return the first `Parsed`, or a `Failed` carrying every reason."""
    if not text or not text.strip():
        return Failed("empty response")
    reasons = []
    for strategy in strategies:
        result = strategy(text)
        if isinstance(result, Parsed):
            return result
        reasons.append(result.reason)
    return Failed("; ".join(reasons))


def extract_json(text: str, strategies: Sequence[Strategy]) -> Any:
    """Like `try_strategies` but raise `UnparsableResponseError` on failure."""
    result = try_strategies(text, strategies)
    if isinstance(result, Failed):
        preview = (text or "").strip()[:50]
        raise UnparsableResponseError(
            f"Could not parse response as JSON ({result.reason}). "
            f'Response starts with: "{preview}..."',
            response=text or "",
        )
    return result.value
