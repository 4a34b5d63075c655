"""
Discovery node: collects enough of the profile to run a search.

Order of checks: name correction, escalation, exit, financing, trade-in,
then profile extraction. Once ``can_recommend`` holds, control moves to
Search in the same turn; otherwise a clarifying question is asked.
"""

from carinsight.config import settings
from carinsight.conversation.extractor import can_recommend
from carinsight.conversation.guardrails import needs_handoff
from carinsight.conversation.intents import Intent, matches
from carinsight.conversation.transitions import NodeContext, Transition, goto, reply
from carinsight.logging_context import get_session_logger
from carinsight.prompts import messages
from carinsight.schemas.conversation_schema import DialogueNode

logger = get_session_logger(__name__)


async def discovery_node(ctx: NodeContext) -> Transition:
    text = ctx.text
    profile = ctx.profile
    extractor = ctx.services.extractor

    corrected = extractor.detect_name_correction(text, profile.customer_name)
    if corrected and corrected != profile.customer_name:
        logger.info("Customer corrected their name")
        updated = profile.merged({"customer_name": corrected})
        return reply(
            DialogueNode.DISCOVERY,
            messages.build_name_correction(corrected, updated),
            profile={"customer_name": corrected},
        )

    checks = ctx.services.guardrails.check_user_input(text, ctx.metadata.loop_count)
    if needs_handoff(checks):
        return goto(DialogueNode.HANDOFF, flags=["handoff_requested"])

    if matches(Intent.EXIT, text):
        return goto(DialogueNode.END, flags=["conversation_ended"])

    update = extractor.extract(text, profile)

    if matches(Intent.FINANCING, text):
        update.setdefault("financing", {"wants_financing": True})
        return goto(DialogueNode.FINANCING, profile=update)

    if matches(Intent.TRADE_IN, text):
        # Brand and year in this message describe the car being traded in.
        return goto(DialogueNode.TRADE_IN, profile={"trade_in": {"has_trade_in": True}})

    merged = profile.merged(update)
    if can_recommend(merged):
        logger.info("Profile ready for search")
        return goto(DialogueNode.SEARCH, profile=update)

    offer_handoff = ctx.metadata.loop_count + 1 >= settings.guardrails.confusion_threshold
    return reply(
        DialogueNode.DISCOVERY,
        messages.build_discovery_question(merged, offer_handoff=offer_handoff),
        profile=update,
        loop_increment=1,
    )
