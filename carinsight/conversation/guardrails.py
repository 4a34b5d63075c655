"""
Guardrails around customer input and generated prose.

Three independent layers, each checking a different concern:
1. ScopeGuardrail: keeps free-form questions about vehicles and buying
2. HallucinationGuardrail: flags sales promises and prices nobody confirmed
3. EscalationGuardrail: detects requests for a human and repeated confusion

They are composed into a GuardrailPipeline for pre-LLM and post-LLM checks.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from carinsight.config import settings
from carinsight.conversation.intents import INTENT_PATTERNS, Intent
from carinsight.utils import parse_amount

logger = logging.getLogger(__name__)

_PRICE = re.compile(r"r\$\s*(\d{1,3}(?:\.\d{3})+|\d+)(?:,\d{2})?\s*(mil)?", re.IGNORECASE)


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None
    severity: str = "warning"  # "warning" | "block" | "escalate"


class ScopeGuardrail:
    """Rejects questions that are not about vehicles or the purchase."""

    OUT_OF_SCOPE_TOPICS = [
        "política", "politica", "eleição", "religião", "religiao",
        "criptomoeda", "bitcoin", "investimento", "ações da bolsa",
        "conselho médico", "remédio", "advogado", "processo judicial",
    ]

    def check_topic_scope(self, text: str) -> GuardrailResult:
        lower = text.lower()
        for topic in self.OUT_OF_SCOPE_TOPICS:
            if topic in lower:
                return GuardrailResult(
                    passed=False,
                    violation_type="out_of_scope_topic",
                    message=f"Topic '{topic}' is outside our scope.",
                    severity="block",
                )
        return GuardrailResult(passed=True)


class HallucinationGuardrail:
    """Detects promises and prices in generated text that the store never made."""

    FORBIDDEN_CLAIMS = [
        "garantia de fábrica", "garantimos", "garantido", "aprovação garantida",
        "sem juros", "juros zero", "taxa zero", "sem entrada",
        "único dono", "nunca bateu", "revisado na concessionária",
        "menor preço", "mais barato do mercado", "desconto de",
    ]

    def check_response(self, response_text: str) -> GuardrailResult:
        lower = response_text.lower()
        for claim in self.FORBIDDEN_CLAIMS:
            if claim in lower:
                logger.warning("Hallucination detected: '%s'", claim)
                return GuardrailResult(
                    passed=False,
                    violation_type="potential_hallucination",
                    message=f"Response contains unverified claim: '{claim}'.",
                    severity="block",
                )
        return GuardrailResult(passed=True)

    def check_prices(
        self, response_text: str, known_prices: list[float]
    ) -> GuardrailResult:
        """Every R$ amount quoted must be one of the listed vehicle prices."""
        known = {round(p) for p in known_prices}
        for match in _PRICE.finditer(response_text):
            value = parse_amount(match.group(1), match.group(2))
            if value and value not in known:
                logger.warning("Unverified price in response: R$ %d", value)
                return GuardrailResult(
                    passed=False,
                    violation_type="unverified_price",
                    message=f"Response quotes a price not in the listing: {value}.",
                    severity="block",
                )
        return GuardrailResult(passed=True)


class EscalationGuardrail:
    """Detects conditions requiring a human consultant."""

    FRUSTRATION_KEYWORDS = [
        "absurdo", "ridículo", "ridiculo", "palhaçada", "inútil", "inutil",
        "não resolve", "nao resolve", "já falei", "ja falei", "procon",
        "reclame aqui",
    ]

    def check_escalation_needed(
        self, user_message: str, loop_count: int = 0
    ) -> GuardrailResult:
        lower = user_message.lower()

        if INTENT_PATTERNS[Intent.HANDOFF].search(lower):
            logger.info("Customer asked for a human consultant")
            return GuardrailResult(
                passed=False,
                violation_type="human_requested",
                message="Customer asked to talk to a consultant.",
                severity="escalate",
            )

        for keyword in self.FRUSTRATION_KEYWORDS:
            if keyword in lower:
                logger.info("Frustration keyword detected: '%s'", keyword)
                return GuardrailResult(
                    passed=False,
                    violation_type="customer_frustration",
                    message=f"Customer frustration detected: '{keyword}'.",
                    severity="escalate",
                )

        threshold = settings.guardrails.confusion_threshold
        if loop_count >= threshold:
            return GuardrailResult(
                passed=False,
                violation_type="repeated_confusion",
                message=f"Loop count ({loop_count}) reached threshold ({threshold}).",
                severity="warning",
            )

        return GuardrailResult(passed=True)


class GuardrailPipeline:
    """Composes all guardrails into pre-LLM and post-LLM check pipelines."""

    def __init__(self) -> None:
        self.scope = ScopeGuardrail()
        self.hallucination = HallucinationGuardrail()
        self.escalation = EscalationGuardrail()

    def check_user_input(
        self, text: str, loop_count: int = 0
    ) -> list[GuardrailResult]:
        """Pre-LLM: check customer input for escalation triggers and scope violations."""
        results = [
            self.escalation.check_escalation_needed(text, loop_count),
            self.scope.check_topic_scope(text),
        ]
        return [r for r in results if not r.passed]

    def check_agent_response(
        self, text: str, known_prices: Optional[list[float]] = None
    ) -> list[GuardrailResult]:
        """Post-LLM: check generated text for promises and unlisted prices."""
        results = [
            self.hallucination.check_response(text),
            self.hallucination.check_prices(text, known_prices or []),
        ]
        return [r for r in results if not r.passed]


def needs_handoff(results: list[GuardrailResult]) -> bool:
    """True when any failed check demands an immediate human."""
    return any(r.severity == "escalate" for r in results)
