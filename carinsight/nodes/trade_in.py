"""Trade-in node: collects the customer's current car and estimates its value."""

from typing import Optional

from carinsight.conversation.intents import Intent, matches
from carinsight.conversation.transitions import NodeContext, Transition, goto, reply
from carinsight.logging_context import get_session_logger
from carinsight.prompts import messages
from carinsight.schemas.conversation_schema import DialogueNode
from carinsight.schemas.profile_schema import TradeInInfo
from carinsight.tools.trade_in import estimate_trade_in

logger = get_session_logger(__name__)


def _navigate(ctx: NodeContext, text: str) -> Optional[Transition]:
    if ctx.recommendations and matches(Intent.BACK_TO_OPTIONS, text):
        return goto(DialogueNode.RECOMMENDATION)
    if matches(Intent.CLOSE_DEAL, text):
        return goto(DialogueNode.NEGOTIATION)
    if matches(Intent.FINANCING, text):
        return goto(DialogueNode.FINANCING, profile={"financing": {"wants_financing": True}})
    return None


async def trade_in_node(ctx: NodeContext) -> Transition:
    text = ctx.text
    prior = ctx.profile.trade_in
    extracted = ctx.services.extractor.extract_trade_in(text)

    if not extracted and not ctx.is_entry:
        transition = _navigate(ctx, text)
        if transition is not None:
            return transition
        if ctx.metadata.has_flag("trade_in_evaluated"):
            return reply(DialogueNode.TRADE_IN, messages.build_trade_in_followup())

    trade_in = TradeInInfo.model_validate(
        {**prior.model_dump(), **extracted, "has_trade_in": True}
    )
    update = {"trade_in": {**extracted, "has_trade_in": True}}

    if not (trade_in.brand and trade_in.year):
        return reply(
            DialogueNode.TRADE_IN,
            messages.build_trade_in_question(trade_in),
            profile=update,
        )

    try:
        estimate = estimate_trade_in(trade_in.brand, trade_in.year, trade_in.mileage)
    except ValueError as e:
        logger.info("Trade-in details rejected: %s", e)
        return reply(DialogueNode.TRADE_IN, messages.build_trade_in_invalid(), profile=update)

    update["trade_in"]["estimated_value"] = estimate.mid_value
    logger.info(
        "Trade-in estimated between %d and %d", estimate.min_value, estimate.max_value
    )
    return reply(
        DialogueNode.TRADE_IN,
        messages.build_trade_in_estimate(trade_in, estimate),
        profile=update,
        flags=["trade_in_evaluated"],
    )
