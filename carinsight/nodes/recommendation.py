"""
Recommendation node: presents the ranked vehicles and reacts to the choice.

On entry it renders the list (or an apology when the search failed or came
back empty). Later turns handle a numeric selection, navigation keywords,
refinements of the search criteria and free-form questions about the cars.
"""

from carinsight.conversation.intents import Intent, matches, parse_selection
from carinsight.conversation.transitions import NodeContext, Transition, goto, reply
from carinsight.logging_context import get_session_logger
from carinsight.prompts import messages
from carinsight.prompts.system_prompts import build_vehicle_qa_messages
from carinsight.schemas.conversation_schema import DialogueNode, Speaker
from carinsight.tools.llm_router import ChatMessage

logger = get_session_logger(__name__)

# Profile fields that, when changed by the customer, trigger a new search.
REFINEMENT_FIELDS = ("budget", "body_type", "usage")
# A question naming a brand or model is about the cars on screen, not a new search.
STATEMENT_REFINEMENT_FIELDS = ("brand", "model")


def _present(ctx: NodeContext) -> Transition:
    if "search_error" in ctx.turn_flags:
        return reply(DialogueNode.RECOMMENDATION, messages.build_search_error())
    if not ctx.recommendations:
        return reply(DialogueNode.RECOMMENDATION, messages.build_no_results())
    return reply(
        DialogueNode.RECOMMENDATION,
        messages.build_recommendation_list(ctx.recommendations),
    )


def _refinement(ctx: NodeContext, text: str, is_question: bool) -> dict:
    update = ctx.services.extractor.extract(text, ctx.profile)
    current = ctx.profile.model_dump(mode="json")
    fields = REFINEMENT_FIELDS if is_question else REFINEMENT_FIELDS + STATEMENT_REFINEMENT_FIELDS
    changed = {
        key: update[key]
        for key in fields
        if key in update and update[key] != current.get(key)
    }
    return update if changed else {}


def _history(ctx: NodeContext) -> list[ChatMessage]:
    # The current question is appended separately.
    previous = ctx.session.messages[:-1]
    return [
        {
            "role": "user" if m.speaker == Speaker.HUMAN else "assistant",
            "content": m.text,
        }
        for m in previous
    ]


async def _answer_question(ctx: NodeContext, text: str) -> Transition:
    guardrails = ctx.services.guardrails
    scope = guardrails.scope.check_topic_scope(text)
    if not scope.passed:
        return reply(DialogueNode.RECOMMENDATION, messages.build_question_out_of_scope())

    prompt = build_vehicle_qa_messages(
        ctx.profile, ctx.recommendations, text, history=_history(ctx)
    )
    result = await ctx.services.router.complete(prompt)
    if result.is_fallback:
        return reply(
            DialogueNode.RECOMMENDATION,
            messages.build_question_unavailable(),
            flags=["llm_unavailable"],
        )

    known_prices = [r.vehicle.price for r in ctx.recommendations]
    violations = guardrails.check_agent_response(result.text, known_prices)
    if violations:
        logger.warning(
            "Generated answer rejected: %s", [v.violation_type for v in violations]
        )
        return reply(DialogueNode.RECOMMENDATION, messages.build_question_needs_consultant())

    logger.info("Question answered by %s", result.provider)
    return reply(DialogueNode.RECOMMENDATION, result.text.strip())


async def recommendation_node(ctx: NodeContext) -> Transition:
    if ctx.is_entry:
        return _present(ctx)

    text = ctx.text
    recs = ctx.recommendations

    index = parse_selection(text)
    if index is not None and recs:
        if index >= len(recs):
            return reply(DialogueNode.RECOMMENDATION, messages.build_invalid_selection(len(recs)))
        chosen = recs[index]
        logger.info("Customer selected vehicle %d (%s)", index + 1, chosen.vehicle_id)
        return reply(
            DialogueNode.RECOMMENDATION,
            messages.build_vehicle_details(chosen),
            profile={"selected_vehicle_id": chosen.vehicle_id},
            flags=[f"viewed_vehicle_{chosen.vehicle_id}"],
        )

    if matches(Intent.VISIT, text):
        return goto(DialogueNode.NEGOTIATION, flags=["visit_requested"])

    if matches(Intent.HANDOFF, text):
        return goto(DialogueNode.HANDOFF, flags=["handoff_requested"])

    if matches(Intent.FINANCING, text):
        return goto(DialogueNode.FINANCING, profile={"financing": {"wants_financing": True}})

    if matches(Intent.TRADE_IN, text):
        return goto(DialogueNode.TRADE_IN, profile={"trade_in": {"has_trade_in": True}})

    if matches(Intent.PURCHASE, text):
        return goto(DialogueNode.NEGOTIATION)

    if matches(Intent.MORE_OPTIONS, text):
        logger.info("Customer asked for more options")
        return goto(
            DialogueNode.SEARCH,
            profile={"shown_recommendation": False},
            flags=["more_options_requested"],
        )

    if matches(Intent.EXIT, text):
        return goto(DialogueNode.END, flags=["conversation_ended"])

    is_question = matches(Intent.QUESTION, text)
    update = _refinement(ctx, text, is_question)
    if update:
        logger.info("Search criteria refined: %s", sorted(update))
        return goto(DialogueNode.SEARCH, profile=update)

    if is_question and ctx.services.router is not None and recs:
        return await _answer_question(ctx, text)

    return reply(DialogueNode.RECOMMENDATION, messages.build_recommendation_help())
