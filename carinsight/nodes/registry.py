"""
Node registry: maps each DialogueNode to its handler.

The state machine resolves handlers here at runtime instead of importing
every node module itself, so nodes and the machine never import each
other. Tests and deployments can swap a handler with ``register_node``.
"""

import logging

from carinsight.conversation.transitions import NodeHandler
from carinsight.schemas.conversation_schema import DialogueNode

logger = logging.getLogger(__name__)

_NODE_REGISTRY: dict[DialogueNode, NodeHandler] = {}


def register_node(node: DialogueNode, handler: NodeHandler) -> None:
    """Register (or replace) the handler for ``node``."""
    _NODE_REGISTRY[node] = handler
    logger.debug("Node registered: %s", node.value)


def get_handler(node: DialogueNode) -> NodeHandler:
    """Return the handler for ``node``.

    Raises:
        KeyError: If no handler is registered for the node.
    """
    if node not in _NODE_REGISTRY:
        registered = [n.value for n in _NODE_REGISTRY]
        raise KeyError(f"Node '{node.value}' not registered. Available: {registered}")
    return _NODE_REGISTRY[node]


def registered_nodes() -> dict[DialogueNode, NodeHandler]:
    """Snapshot of the current registry."""
    return dict(_NODE_REGISTRY)


def _auto_register() -> None:
    """Auto-register all built-in nodes. Called once at import time."""
    from carinsight.nodes.discovery import discovery_node
    from carinsight.nodes.financing import financing_node
    from carinsight.nodes.greeting import greeting_node
    from carinsight.nodes.negotiation import negotiation_node
    from carinsight.nodes.recommendation import recommendation_node
    from carinsight.nodes.search import search_node
    from carinsight.nodes.terminal import end_node, handoff_node
    from carinsight.nodes.trade_in import trade_in_node

    register_node(DialogueNode.GREETING, greeting_node)
    register_node(DialogueNode.DISCOVERY, discovery_node)
    register_node(DialogueNode.SEARCH, search_node)
    register_node(DialogueNode.RECOMMENDATION, recommendation_node)
    register_node(DialogueNode.FINANCING, financing_node)
    register_node(DialogueNode.TRADE_IN, trade_in_node)
    register_node(DialogueNode.NEGOTIATION, negotiation_node)
    register_node(DialogueNode.HANDOFF, handoff_node)
    register_node(DialogueNode.END, end_node)


_auto_register()
