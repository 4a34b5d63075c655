"""
Keyword intents used by the dialogue nodes for navigation.

Each intent is one compiled pattern; nodes decide which intents they
listen for and in which order.
"""

import re
from enum import Enum
from typing import Optional


class Intent(str, Enum):
    HANDOFF = "handoff"
    EXIT = "exit"
    FAREWELL = "farewell"
    FINANCING = "financing"
    TRADE_IN = "trade_in"
    VISIT = "visit"
    PURCHASE = "purchase"
    MORE_OPTIONS = "more_options"
    BACK_TO_OPTIONS = "back_to_options"
    CLOSE_DEAL = "close_deal"
    NEW_SEARCH = "new_search"
    TIMING = "timing"
    QUESTION = "question"


INTENT_PATTERNS: dict[Intent, re.Pattern] = {
    Intent.HANDOFF: re.compile(
        r"vendedor|humano|atendente|pessoa real|consultor|"
        r"falar com (?:algu[eé]m|uma pessoa)",
        re.IGNORECASE,
    ),
    # Exit only when the whole message is the command.
    Intent.EXIT: re.compile(
        r"^\s*(?:sair|tchau|bye|encerrar|finalizar)[.!]*\s*$", re.IGNORECASE
    ),
    Intent.FAREWELL: re.compile(
        r"\b(?:tchau|bye|sair|encerrar|obrigad[oa]|valeu)\b", re.IGNORECASE
    ),
    Intent.FINANCING: re.compile(
        r"financ|parcel|\bentrada\b|presta[cç][aã]o", re.IGNORECASE
    ),
    Intent.TRADE_IN: re.compile(
        r"\btroca\b|meu carro|dar na troca|trocar meu", re.IGNORECASE
    ),
    Intent.VISIT: re.compile(
        r"agendar|visita|test.?drive|conhecer", re.IGNORECASE
    ),
    Intent.PURCHASE: re.compile(
        r"gostei|interessei|quero esse|quero o\b|vou levar|fechar|comprar",
        re.IGNORECASE,
    ),
    Intent.MORE_OPTIONS: re.compile(
        r"mais op[cç][oõ]es|outras|outros|diferentes|\boutro\b", re.IGNORECASE
    ),
    Intent.BACK_TO_OPTIONS: re.compile(
        r"voltar|ver carros|ver os carros|op[cç][oõ]es|recomend|mais carros",
        re.IGNORECASE,
    ),
    Intent.CLOSE_DEAL: re.compile(
        r"vendedor|humano|consultor|fechar|aprovar|avalia[cç][aã]o presencial|"
        r"avaliar presencial",
        re.IGNORECASE,
    ),
    Intent.NEW_SEARCH: re.compile(
        r"buscar|procurar|outro tipo|diferente", re.IGNORECASE
    ),
    Intent.TIMING: re.compile(
        r"quando|prazo|demora|contato|hor[aá]rio", re.IGNORECASE
    ),
    Intent.QUESTION: re.compile(
        r"\?|^\s*(?:qual|quais|como|quanto|quantos|tem|possui|o que|por que|porque)\b",
        re.IGNORECASE,
    ),
}


def matches(intent: Intent, text: str) -> bool:
    """True if ``text`` expresses ``intent``."""
    return bool(INTENT_PATTERNS[intent].search(text))


def parse_selection(text: str) -> Optional[int]:
    """Zero-based index for a bare "1", "2" or "3" reply."""
    match = re.fullmatch(r"\s*([1-3])\s*[.!]?\s*", text)
    if not match:
        return None
    return int(match.group(1)) - 1
