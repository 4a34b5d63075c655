"""
Deterministic profile extraction from free-text customer messages.

Every profile field is filled by an ordered table of ExtractionRule entries
grouped into families. Within a family the first matching rule wins; rule
order is data, so priorities can be read (and tested) without tracing
control flow. The extractor is stateless and never calls out.

Usage:
    extractor = ProfileExtractor()
    extractor.extract("quero um SUV até 80 mil")
    # {'budget': 80000, 'body_type': 'suv'}
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from carinsight.schemas.profile_schema import CustomerProfile
from carinsight.utils import parse_amount

logger = logging.getLogger(__name__)

Transform = Callable[[re.Match], dict[str, Any]]


@dataclass(frozen=True)
class ExtractionRule:
    """A pattern and the partial profile it produces when it matches."""
    name: str
    pattern: re.Pattern
    transform: Transform

    def apply(self, text: str) -> Optional[dict[str, Any]]:
        match = self.pattern.search(text)
        if match is None:
            return None
        return self.transform(match)


@dataclass(frozen=True)
class RuleFamily:
    """Ordered rules for one concern. ``collect`` keeps every match."""
    name: str
    rules: tuple[ExtractionRule, ...]
    collect: bool = False


def _rule(name: str, pattern: str, transform: Transform) -> ExtractionRule:
    return ExtractionRule(name, re.compile(pattern, re.IGNORECASE), transform)


def _const(**values: Any) -> Transform:
    return lambda _match: dict(values)


def _thousands(value: int) -> int:
    return value * 1000 if value < 1000 else value


def _budget(match: re.Match) -> dict[str, Any]:
    return {"budget": _thousands(parse_amount(match.group(1)))}


# --- vocabularies ---

BRAND_ALIASES: dict[str, str] = {
    "vw": "volkswagen",
    "volks": "volkswagen",
    "volkswagen": "volkswagen",
    "gm": "chevrolet",
    "chevrolet": "chevrolet",
    "chevy": "chevrolet",
    "toyota": "toyota",
    "honda": "honda",
    "fiat": "fiat",
    "ford": "ford",
    "hyundai": "hyundai",
    "jeep": "jeep",
    "nissan": "nissan",
    "renault": "renault",
    "peugeot": "peugeot",
    "citroen": "citroen",
    "citroën": "citroen",
    "mitsubishi": "mitsubishi",
    "kia": "kia",
    "bmw": "bmw",
    "mercedes": "mercedes",
    "audi": "audi",
}

KNOWN_MODELS: dict[str, str] = {
    "corolla": "toyota", "hilux": "toyota", "yaris": "toyota", "etios": "toyota",
    "civic": "honda", "city": "honda", "hr-v": "honda", "hrv": "honda", "fit": "honda",
    "gol": "volkswagen", "polo": "volkswagen", "virtus": "volkswagen",
    "t-cross": "volkswagen", "tcross": "volkswagen", "nivus": "volkswagen",
    "saveiro": "volkswagen", "amarok": "volkswagen", "jetta": "volkswagen",
    "onix": "chevrolet", "tracker": "chevrolet", "spin": "chevrolet",
    "s10": "chevrolet", "cruze": "chevrolet", "prisma": "chevrolet",
    "hb20": "hyundai", "creta": "hyundai", "tucson": "hyundai",
    "compass": "jeep", "renegade": "jeep", "commander": "jeep",
    "kicks": "nissan", "frontier": "nissan", "versa": "nissan",
    "argo": "fiat", "cronos": "fiat", "mobi": "fiat", "uno": "fiat",
    "palio": "fiat", "siena": "fiat", "toro": "fiat", "strada": "fiat", "pulse": "fiat",
    "ranger": "ford", "ka": "ford", "ecosport": "ford",
    "kwid": "renault", "sandero": "renault", "duster": "renault", "logan": "renault",
}

# Tokens that look like names after "sou ..." or a greeting but are not.
NAME_STOPWORDS = frozenset({
    "oi", "ola", "olá", "opa", "bom", "boa", "dia", "tarde", "noite", "tudo", "bem",
    "quero", "queria", "preciso", "procuro", "procurando", "gostaria", "estou",
    "um", "uma", "o", "a", "de", "do", "da", "e", "que", "pra", "para",
    "carro", "carros", "veiculo", "veículo", "suv", "sedan", "sedã", "hatch",
    "pickup", "picape", "minivan", "van", "sim", "nao", "não", "ok", "obrigado",
    "obrigada", "tchau", "sair", "motorista", "cliente", "interessado",
    "interessada", "novo", "nova", "casado", "casada", "aqui", "valeu",
    "beleza", "blz", "certo", "claro", "show", "legal", "perfeito", "entendi",
    "daqui", "eu", "muito", "muita", "exigente", "dono", "dona",
    *BRAND_ALIASES.keys(),
    *KNOWN_MODELS.keys(),
})

_NAME = r"([A-ZÀ-Ý][a-zà-ÿ]+)"

_INTRO_PATTERNS: tuple[re.Pattern, ...] = (
    # "não sou daqui" is a negation, not an introduction.
    re.compile(
        r"(?<!(?i:n[ãa]o) )\b(?i:me chamo|meu nome [eé]|aqui [eé] o|aqui [eé] a|sou o|sou a|sou)\s+"
        r"([^\W\d_]+)(\s+[A-ZÀ-Ý][a-zà-ÿ]+)?"
    ),
    re.compile(r"^([^\W\d_]+)\s+aqui\b", re.IGNORECASE),
    re.compile(r"^\s*" + _NAME + r"[.!]?\s*$"),
)

# Seven phrasings customers use to fix a misspelled name.
_CORRECTION_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"(?i:[eé])\s+" + _NAME + r"\s+(?i:na verdade|na real)"),
    re.compile(r"(?i:na verdade|na real),?\s+(?i:[eé]|sou|meu nome [eé])\s+" + _NAME),
    re.compile(r"(?i:meu nome [eé]|me chamo)\s+" + _NAME),
    re.compile(_NAME + r",?\s+(?i:e\s+)?(?i:não|nao)\s+[A-ZÀ-Ý][a-zà-ÿ]+"),
    re.compile(r"(?i:pode me chamar de|me chama de|chama de)\s+" + _NAME),
    re.compile(r"(?i:errei|errado|erro),?\s+(?i:[eé]|sou)\s+" + _NAME),
    re.compile(r"(?i:corrigindo|correção|correcao):?\s+" + _NAME),
)

_SINGLE_NAME = re.compile(r"^\s*" + _NAME + r"[.!]?\s*$")

_BARE_AMOUNT = re.compile(
    r"^\s*(?:uns\s+|umas\s+|cerca de\s+)?(?:r\$\s*)?(\d{2,3}(?:\.\d{3})?)\s*(?:mil|k)?\s*[.!]?\s*$",
    re.IGNORECASE,
)

# A number followed by one of these is not a budget.
_NOT_BUDGET = r"(?!\s*(?:mil\s*)?km)(?!\s*(?:reais\s*)?(?:de\s+)?entrada)"


def _brand_rules() -> tuple[ExtractionRule, ...]:
    return tuple(
        _rule(f"brand_{alias}", rf"\b{re.escape(alias)}\b", _const(brand=brand))
        for alias, brand in BRAND_ALIASES.items()
    )


def _model_rules() -> tuple[ExtractionRule, ...]:
    return tuple(
        _rule(f"model_{model}", rf"\b{re.escape(model)}\b", _const(model=model, brand=brand))
        for model, brand in KNOWN_MODELS.items()
    )


PROFILE_RULES: tuple[RuleFamily, ...] = (
    RuleFamily("budget", (
        _rule("budget_thousands", r"\b(\d{2,3})\s*(?:mil|k)\b" + _NOT_BUDGET, _budget),
        _rule("budget_currency", r"r\$\s*(\d{1,3}(?:\.\d{3})+|\d+)(?:,\d{2})?" + _NOT_BUDGET, _budget),
        _rule("budget_up_to", r"\baté\s*(?:r\$\s*)?(\d{2,3}(?:\.\d{3})?)(?!\d)" + _NOT_BUDGET, _budget),
        _rule("budget_stated", r"orçamento\D{0,30}?(\d{2,3}(?:\.\d{3})?)(?!\d)" + _NOT_BUDGET, _budget),
    )),
    RuleFamily("body_type", (
        _rule("suv", r"\bsuvs?\b", _const(body_type="suv")),
        _rule("sedan", r"\bsed[aã]n?s?\b", _const(body_type="sedan")),
        _rule("hatch", r"\bhatch", _const(body_type="hatch")),
        _rule("pickup", r"\b(?:pickup|picape|caminhonete)s?\b", _const(body_type="pickup")),
        _rule("minivan", r"\b(?:minivan|van)s?\b", _const(body_type="minivan")),
    )),
    RuleFamily("usage", (
        _rule("rideshare", r"\b(?:uber|app|aplicativo|motorista)\b|\b99\b(?!\s*(?:mil|k)\b)",
              _const(usage="rideshare")),
        _rule("family", r"fam[ií]lia|filhos|crian[cç]as|passeio", _const(usage="trip")),
        _rule("work", r"trabalh|servi[cç]o|empresa|entregas", _const(usage="work")),
        _rule("city", r"cidade|urbano|dia\s*a\s*dia", _const(usage="city")),
        _rule("trip", r"viage|estrada|rodovia", _const(usage="trip")),
        _rule("mixed", r"\bmisto\b|um pouco de tudo", _const(usage="mixed")),
    )),
    RuleFamily("occupants", (
        _rule("large_family", r"fam[ií]lia grande|muitos filhos",
              _const(people=5, min_seats=7)),
        _rule("seats", r"\b(\d)\s*lugares\b",
              lambda m: {"min_seats": int(m.group(1))}),
        _rule("people", r"\b(\d{1,2})\s*(?:pessoas?|passageiros?)\b",
              lambda m: {"people": int(m.group(1))}),
    )),
    RuleFamily("min_year", (
        _rule("year_floor", r"(?:a partir de|m[ií]nimo|desde|acima de|depois de)\s*(?:o\s+)?(?:ano\s+)?(20[0-2]\d)\b",
              lambda m: {"min_year": int(m.group(1))}),
        _rule("year_bare", r"\b(20[0-2]\d)\b(?!\s*(?:mil|km))",
              lambda m: {"min_year": int(m.group(1))}),
    )),
    RuleFamily("max_mileage", (
        _rule("mileage_cap", r"(?:at[eé]|m[aá]ximo|menos de)\s*(\d{2,3}(?:\.\d{3})?)\s*(?:mil\s*)?km",
              lambda m: {"max_mileage": _thousands(parse_amount(m.group(1)))}),
    )),
    RuleFamily("transmission", (
        _rule("automatic", r"autom[aá]tic", _const(transmission="automatic")),
        _rule("manual", r"\bmanual\b", _const(transmission="manual")),
    )),
    RuleFamily("fuel_type", (
        _rule("flex", r"\bflex\b", _const(fuel_type="flex")),
        _rule("diesel", r"\bdiesel\b", _const(fuel_type="diesel")),
        _rule("hybrid", r"h[ií]brido", _const(fuel_type="hybrid")),
        _rule("electric", r"el[eé]trico", _const(fuel_type="electric")),
        _rule("gasoline", r"\bgasolina\b", _const(fuel_type="gasoline")),
    )),
    RuleFamily("brand", _brand_rules()),
    RuleFamily("model", _model_rules()),
    RuleFamily("trade_in", (
        _rule("trade_in",
              r"tenho .{0,40}(?:pra|para)?\s*(?:dar na\s+)?troca|meu carro .{0,30}troca|"
              r"trocar meu|dar na troca|na troca",
              _const(trade_in={"has_trade_in": True})),
    )),
    RuleFamily("financing", (
        _rule("financing", r"financ|parcel|\bentrada\b|presta[cç][aã]o",
              _const(financing={"wants_financing": True})),
    )),
    RuleFamily("urgency", (
        _rule("immediate", r"urgente|o quanto antes|essa semana|imediat", _const(urgency="immediate")),
        _rule("one_month", r"(?:esse|este|pr[oó]ximo) m[eê]s|\bum m[eê]s\b", _const(urgency="one_month")),
        _rule("three_months", r"\b(?:tr[eê]s|3)\s+meses\b", _const(urgency="three_months")),
        _rule("flexible", r"sem pressa|n[aã]o tenho pressa", _const(urgency="flexible")),
    )),
    RuleFamily("priorities", (
        _rule("economy", r"econ[oô]m|consumo baixo|gasta pouco", _const(priorities=["economy"])),
        _rule("comfort", r"confort|espa[cç]o", _const(priorities=["comfort"])),
        _rule("safety", r"segur|airbag|freio abs", _const(priorities=["safety"])),
        _rule("power", r"potent|\bforte\b|motor bom", _const(priorities=["power"])),
    ), collect=True),
)

TRADE_IN_RULES: tuple[RuleFamily, ...] = (
    RuleFamily("brand", _brand_rules()),
    RuleFamily("model", _model_rules()),
    RuleFamily("year", (
        _rule("year", r"\b(19[89]\d|20[0-2]\d)\b(?!\s*(?:mil|km))",
              lambda m: {"year": int(m.group(1))}),
    )),
    RuleFamily("mileage", (
        _rule("mileage", r"(\d{1,3}(?:\.\d{3})+|\d+)\s*(mil)?\s*(?:km|quil[oô]metros)",
              lambda m: {"mileage": _thousands(parse_amount(m.group(1), m.group(2)))}),
    )),
)


def _capitalize(word: str) -> str:
    return word[:1].upper() + word[1:].lower()


def is_similar_name(a: str, b: str) -> bool:
    """True when two names differ by one or two characters (a likely typo)."""
    a, b = a.lower(), b.lower()
    if abs(len(a) - len(b)) > 2:
        return False
    longest = max(len(a), len(b))
    mismatches = sum(
        1 for i in range(longest)
        if i >= len(a) or i >= len(b) or a[i] != b[i]
    )
    return 0 < mismatches <= 2


def can_recommend(profile: CustomerProfile) -> bool:
    """Enough is known to search: a budget, or a body type, usage or brand."""
    return bool(profile.budget or profile.body_type or profile.usage or profile.brand)


class ProfileExtractor:
    """Applies the rule tables to a single utterance."""

    def __init__(
        self,
        profile_rules: tuple[RuleFamily, ...] = PROFILE_RULES,
        trade_in_rules: tuple[RuleFamily, ...] = TRADE_IN_RULES,
    ) -> None:
        self._profile_rules = profile_rules
        self._trade_in_rules = trade_in_rules

    @staticmethod
    def _run(families: tuple[RuleFamily, ...], text: str) -> dict[str, Any]:
        updates: dict[str, Any] = {}
        for family in families:
            for rule in family.rules:
                produced = rule.apply(text)
                if produced is None:
                    continue
                for key, value in produced.items():
                    if family.collect and isinstance(value, list):
                        updates.setdefault(key, [])
                        updates[key].extend(v for v in value if v not in updates[key])
                    else:
                        # Earlier families win on shared keys (brand before model).
                        updates.setdefault(key, value)
                if not family.collect:
                    break
        return updates

    def extract(
        self, utterance: str, prior_profile: Optional[CustomerProfile] = None
    ) -> dict[str, Any]:
        """Partial profile update for ``utterance``.

        When the prior profile has no budget yet, a message that is only
        an amount ("uns 90", "R$ 85.000") is read as the budget, since the
        assistant has just asked for one.
        """
        text = utterance.strip()
        updates = self._run(self._profile_rules, text)
        if "budget" not in updates and prior_profile is not None and prior_profile.budget is None:
            bare = _BARE_AMOUNT.match(text)
            if bare:
                updates["budget"] = _thousands(parse_amount(bare.group(1)))
        if updates:
            logger.debug("Extracted %s", sorted(updates))
        return updates

    def extract_trade_in(self, utterance: str) -> dict[str, Any]:
        """Brand, model, year and mileage of the customer's current car."""
        return self._run(self._trade_in_rules, utterance.strip())

    def extract_name(self, utterance: str) -> Optional[str]:
        """Name from a self-introduction such as "oi, sou Maria"."""
        text = utterance.strip()
        for pattern in _INTRO_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            first = match.group(1)
            if first.lower() in NAME_STOPWORDS or len(first) < 2:
                continue
            parts = [_capitalize(first)]
            if match.lastindex and match.lastindex >= 2 and match.group(2):
                surname = match.group(2).strip()
                if surname.lower() not in NAME_STOPWORDS:
                    parts.append(surname)
            return " ".join(parts)
        return None

    def detect_name_correction(
        self, utterance: str, current_name: Optional[str]
    ) -> Optional[str]:
        """Corrected name if the customer is fixing it, else None."""
        text = utterance.strip()
        current = (current_name or "").split(" ")[0].lower()

        for pattern in _CORRECTION_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            name = match.group(1)
            if name.lower() in NAME_STOPWORDS or name.lower() == current:
                continue
            logger.info("Name correction detected: %r -> %r", current_name, name)
            return name

        if current:
            single = _SINGLE_NAME.match(text)
            if single:
                name = single.group(1)
                if name.lower() not in NAME_STOPWORDS and is_similar_name(current, name):
                    logger.info("Typo correction detected: %r -> %r", current_name, name)
                    return name
        return None
