"""
Guardrails around the language model.

Two independent checks:
1. PromptOverrideGuardrail: detects attempts to rewrite the bot's instructions
2. DisclosureGuardrail: flags replies that leak internal identifiers

Composed into a GuardrailPipeline for pre-LLM and post-LLM checks.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from recruit_engine.utils import strip_accents

logger = logging.getLogger(__name__)


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None
    severity: str = "warning"  # "warning" | "block"


class PromptOverrideGuardrail:
    """Detects messages trying to replace or reveal the system instructions."""

    OVERRIDE_PATTERNS = [
        "olvida lo anterior", "olvida tus instrucciones", "ignora tus instrucciones",
        "ignora las instrucciones", "ignora lo anterior", "nuevas instrucciones",
        "actua como", "eres ahora", "modo desarrollador", "prompt del sistema",
        "ignore previous instructions", "ignore all previous", "forget your instructions",
        "system prompt", "you are now", "developer mode", "jailbreak",
    ]

    def check_input(self, text: str) -> GuardrailResult:
        lower = strip_accents(text)
        for pattern in self.OVERRIDE_PATTERNS:
            if pattern in lower:
                logger.warning("Prompt override attempt detected: '%s'", pattern)
                return GuardrailResult(
                    passed=False,
                    violation_type="prompt_override",
                    message=f"Input tries to override instructions: '{pattern}'.",
                    severity="block",
                )
        return GuardrailResult(passed=True)


class DisclosureGuardrail:
    """Blocks replies that mention internal ids of stores, vacancies or calendars."""

    # Document ids and event ids look like long opaque tokens
    OPAQUE_ID_PATTERN = re.compile(r"\b(?=[A-Za-z0-9_-]*\d)(?=[A-Za-z0-9_-]*[A-Za-z])[A-Za-z0-9_-]{16,}\b")

    def check_response(
        self, response_text: str, internal_ids: Iterable[str] = ()
    ) -> GuardrailResult:
        for internal_id in internal_ids:
            if internal_id and re.search(
                rf"(?<![\w-]){re.escape(internal_id)}(?![\w-])", response_text
            ):
                logger.warning("Reply leaks an internal identifier")
                return GuardrailResult(
                    passed=False,
                    violation_type="identifier_leak",
                    message="Response contains an internal identifier.",
                    severity="block",
                )
        if self.OPAQUE_ID_PATTERN.search(response_text):
            return GuardrailResult(
                passed=False,
                violation_type="opaque_token",
                message="Response contains an opaque identifier-like token.",
                severity="block",
            )
        return GuardrailResult(passed=True)


class GuardrailPipeline:
    """Composes all guardrails into pre-LLM and post-LLM check pipelines."""

    def __init__(self) -> None:
        self.override = PromptOverrideGuardrail()
        self.disclosure = DisclosureGuardrail()

    def check_user_input(self, text: str) -> list[GuardrailResult]:
        """Pre-LLM: check user input for instruction override attempts."""
        results = [self.override.check_input(text)]
        return [r for r in results if not r.passed]

    def check_agent_response(
        self, text: str, internal_ids: Iterable[str] = ()
    ) -> list[GuardrailResult]:
        """Post-LLM: check the reply for identifier leaks."""
        results = [self.disclosure.check_response(text, internal_ids)]
        return [r for r in results if not r.passed]
