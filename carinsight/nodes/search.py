"""Search node: runs the ranker and always hands over to Recommendation."""

from carinsight.conversation.transitions import NodeContext, Transition, goto
from carinsight.logging_context import get_session_logger
from carinsight.schemas.conversation_schema import DialogueNode
from carinsight.tools.vehicle_search import InventorySearchError

logger = get_session_logger(__name__)


async def search_node(ctx: NodeContext) -> Transition:
    ranker = ctx.services.ranker
    if ranker is None:
        logger.warning("No ranker configured, search skipped")
        return goto(DialogueNode.RECOMMENDATION, recommendations=[], flags=["no_results"])

    exclude: list[str] = []
    if "more_options_requested" in ctx.turn_flags:
        exclude = [v.vehicle_id for v in ctx.profile.last_shown_vehicles]

    try:
        recommendations = await ranker.recommend(ctx.profile, limit=3, exclude_ids=exclude)
    except InventorySearchError as e:
        logger.error("Vehicle search failed: %s", e)
        return goto(
            DialogueNode.RECOMMENDATION,
            recommendations=[],
            flags=["search_error"],
            error_increment=1,
        )

    if not recommendations:
        logger.info("Search returned no vehicles")
        return goto(DialogueNode.RECOMMENDATION, recommendations=[], flags=["no_results"])

    shown = [
        {
            "vehicle_id": r.vehicle_id,
            "brand": r.vehicle.make,
            "model": r.vehicle.model,
            "year": r.vehicle.year,
            "price": r.vehicle.price,
        }
        for r in recommendations
    ]
    logger.info("Search returned %d vehicles", len(recommendations))
    return goto(
        DialogueNode.RECOMMENDATION,
        recommendations=recommendations,
        profile={"last_shown_vehicles": shown, "shown_recommendation": True},
    )
