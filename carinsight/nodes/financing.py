"""
Financing node: amortization simulation for the vehicle being discussed.

The reference price comes from the selected vehicle, then the first vehicle
shown, then the customer's budget. Down payment and term are parsed from
the message when present; otherwise the configured defaults apply.
"""

import re
from typing import Optional

from carinsight.conversation.intents import Intent, matches
from carinsight.conversation.transitions import NodeContext, Transition, goto, reply
from carinsight.logging_context import get_session_logger
from carinsight.prompts import messages
from carinsight.schemas.conversation_schema import DialogueNode
from carinsight.tools.financing import simulate_alternatives, simulate_financing
from carinsight.utils import parse_amount

logger = get_session_logger(__name__)

_DOWN_PAYMENT = (
    re.compile(
        r"(?:r\$\s*)?(\d{1,3}(?:\.\d{3})+|\d+)\s*(mil|k)?\s*(?:reais\s*)?(?:de\s+)?entrada",
        re.IGNORECASE,
    ),
    re.compile(
        r"entrada\s*(?:de|:)?\s*(?:r\$\s*)?(\d{1,3}(?:\.\d{3})+|\d+)\s*(mil|k)?",
        re.IGNORECASE,
    ),
)
_DOWN_PAYMENT_PCT = re.compile(r"(\d{1,2})\s*%", re.IGNORECASE)
_MONTHS = re.compile(r"\b(\d{2,3})\s*(?:meses|x|vezes|parcelas)\b", re.IGNORECASE)


def parse_down_payment(text: str, price: float) -> Optional[int]:
    """Down payment in reais from "20 mil de entrada", "entrada de 15000" or "30%"."""
    for pattern in _DOWN_PAYMENT:
        match = pattern.search(text)
        if match:
            value = parse_amount(match.group(1), match.group(2))
            return value * 1000 if value < 1000 else value
    pct = _DOWN_PAYMENT_PCT.search(text)
    if pct:
        return round(price * int(pct.group(1)) / 100)
    return None


def parse_months(text: str) -> Optional[int]:
    match = _MONTHS.search(text)
    if not match or int(match.group(1)) == 0:
        return None
    return int(match.group(1))


def _reference_vehicle(ctx: NodeContext) -> tuple[Optional[float], Optional[str]]:
    profile = ctx.profile
    if profile.selected_vehicle_id:
        for rec in ctx.recommendations:
            if rec.vehicle_id == profile.selected_vehicle_id:
                return rec.vehicle.price, rec.vehicle.display_name
    if profile.last_shown_vehicles:
        shown = profile.last_shown_vehicles[0]
        return shown.price, f"{shown.brand} {shown.model} {shown.year}"
    if profile.budget:
        return float(profile.budget), None
    return None, None


async def financing_node(ctx: NodeContext) -> Transition:
    text = ctx.text

    if not ctx.is_entry:
        if ctx.recommendations and matches(Intent.BACK_TO_OPTIONS, text):
            return goto(DialogueNode.RECOMMENDATION)
        if matches(Intent.CLOSE_DEAL, text):
            return goto(DialogueNode.NEGOTIATION)

    price, vehicle_name = _reference_vehicle(ctx)
    if not price:
        logger.info("No price context for financing, back to discovery")
        return reply(DialogueNode.DISCOVERY, messages.build_financing_no_price())

    down = parse_down_payment(text, price)
    months = parse_months(text)
    if down is None and months is None and not ctx.is_entry and not matches(Intent.FINANCING, text):
        return reply(DialogueNode.FINANCING, messages.build_financing_ask(price))

    if down is not None and down >= price:
        return reply(DialogueNode.FINANCING, messages.build_down_payment_too_high(price))

    simulation = simulate_financing(price, down_payment=down, months=months)
    alternatives = [
        alt for alt in simulate_alternatives(price, simulation.down_payment)
        if alt.months != simulation.months
    ]
    logger.info(
        "Financing simulated: %dx of %d", simulation.months, simulation.monthly_payment
    )
    return reply(
        DialogueNode.FINANCING,
        messages.build_financing_summary(simulation, alternatives, vehicle_name),
        profile={
            "financing": {
                "wants_financing": True,
                "down_payment": simulation.down_payment,
                "months": simulation.months,
            }
        },
        flags=["financing_simulated"],
    )
