from carinsight.nodes.registry import get_handler, register_node, registered_nodes

__all__ = ["get_handler", "register_node", "registered_nodes"]
