"""Prompt building and reply parsing around the intent-classification LLM."""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from .catalog import ProductCatalog
from .gemini_client import LLMClient
from .messages import resolve_language, text
from .models import CATEGORIES, IntentAction, IntentEntities, IntentRecord
from .prompt_loader import render_prompt
from .session_store import HistoryEntry, SessionState
from .utils import safe_json_loads
from .variants import ALL_ATTRIBUTES

logger = logging.getLogger("voiceshop.intent")

DEFAULT_PROMPT_TURNS = 4


def format_history(history: Sequence[HistoryEntry], turns: int = DEFAULT_PROMPT_TURNS) -> str:
    """Render the last `turns` entries as `role: "message"` joined by " | "."""
    recent = list(history)[-turns:] if turns > 0 else []
    return " | ".join(f"{entry.role}: {json.dumps(entry.message, ensure_ascii=False)}" for entry in recent)


def build_prompt(
    history: Sequence[HistoryEntry],
    language: str,
    prompts_dir: Path,
    product_names: Optional[List[str]] = None,
    turns: int = DEFAULT_PROMPT_TURNS,
) -> str:
    """Purpose: Build the localized system instruction for intent classification.
    Inputs/Outputs: Inputs are the session history, a language tag, the prompts
        directory, catalog product names, and the history window; output is the
        rendered instruction text.
    Side Effects / State: None beyond the template cache in prompt_loader.
    Dependencies: render_prompt, CATEGORIES, ALL_ATTRIBUTES.
    Failure Modes: A missing template raises FileNotFoundError.
    If Removed: The model has no schema, taxonomy, or conversation context.
    Testing Notes: Spanish tags use intent_es.txt; only the last 4 turns appear.
    """
    lang = resolve_language(language)
    return render_prompt(
        prompts_dir / f"intent_{lang}.txt",
        {
            "ATTRIBUTES": ", ".join(ALL_ATTRIBUTES),
            "PRODUCTS": ", ".join(product_names or []) or "-",
            "CATEGORIES": ", ".join(CATEGORIES),
            "HISTORY": format_history(history, turns) or "-",
        },
    )


def fallback_intent(language: str) -> IntentRecord:
    lang = resolve_language(language)
    return IntentRecord(
        intent="ask_question",
        entities=IntentEntities(),
        action=IntentAction(type="none", data={}),
        response=text(lang, "fallback"),
        follow_up_questions=[text(lang, "fallback_followup")],
    )


def parse_intent(raw: str, language: str) -> IntentRecord:
    """Purpose: Turn raw model text into a validated IntentRecord.
    Inputs/Outputs: Inputs are the raw reply and a language tag; output is always
        an IntentRecord.
    Side Effects / State: Logs when the fallback is used.
    Dependencies: safe_json_loads, IntentRecord validation, fallback_intent.
    Failure Modes: Prose without braces, broken JSON, a non-object, a missing
        intent, or an entity value no validator can coerce all produce
        fallback_intent(language). Never raises.
    If Removed: Malformed replies reach the dispatcher.
    Testing Notes: 'Sure! {"intent": "show_cart"} hope it helps' parses; "oops" falls back.
    """
    data = safe_json_loads(raw)
    if data is None:
        logger.info("intent_parse=failed reason=no_json")
        return fallback_intent(language)
    try:
        return IntentRecord.model_validate(data)
    except ValidationError as exc:
        logger.info("intent_parse=failed reason=invalid errors=%d", exc.error_count())
        return fallback_intent(language)
    except (ArithmeticError, TypeError, ValueError) as exc:
        # Raised from a validator rather than wrapped by pydantic.
        logger.warning("intent_parse=failed reason=%s error=%s", type(exc).__name__, exc)
        return fallback_intent(language)


class IntentBridge:
    """Builds the prompt, calls the LLM under a timeout, and parses the reply."""

    def __init__(
        self,
        llm: LLMClient,
        catalog: ProductCatalog,
        prompts_dir: Path,
        timeout_sec: float = 10.0,
        history_turns: int = DEFAULT_PROMPT_TURNS,
    ) -> None:
        self._llm = llm
        self._catalog = catalog
        self._prompts_dir = prompts_dir
        self._timeout = timeout_sec
        self._history_turns = history_turns
        self._executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="llm")

    def classify(self, message: str, session: SessionState, language: str) -> IntentRecord:
        """Purpose: Produce a best-effort intent record for one user utterance.
        Inputs/Outputs: Inputs are the utterance, the session (for history), and a
            language tag; output is an IntentRecord (never raises).
        Side Effects / State: One LLM call on a worker thread; logs failures.
        Dependencies: build_prompt, LLMClient.complete, parse_intent.
        Failure Modes: Timeouts and client exceptions log and return the fallback.
            A closed bridge also returns the fallback.
        If Removed: The dispatcher has nothing to act on.
        Testing Notes: A fake client that raises or sleeps past the timeout yields
            intent "ask_question".
        """
        prompt = build_prompt(
            session.history,
            language,
            self._prompts_dir,
            product_names=self._catalog.product_names(),
            turns=self._history_turns,
        )
        try:
            future = self._executor.submit(self._llm.complete, prompt, message)
            raw = future.result(timeout=self._timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning("session=%s llm=timeout after=%.1fs", session.session_id, self._timeout)
            return fallback_intent(language)
        except Exception:
            logger.exception("session=%s llm=error", session.session_id)
            return fallback_intent(language)
        record = parse_intent(raw or "", language)
        logger.info(
            "session=%s intent=%s action=%s",
            session.session_id,
            record.intent,
            record.action.type,
        )
        return record

    def close(self) -> None:
        """Stop the LLM worker threads; later classify calls return the fallback."""
        self._executor.shutdown(wait=False)
