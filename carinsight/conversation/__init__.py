from carinsight.conversation.extractor import ProfileExtractor, can_recommend
from carinsight.conversation.guardrails import GuardrailPipeline
from carinsight.conversation.session_store import SessionStore
from carinsight.conversation.state_machine import ConversationStateMachine, TurnResult
from carinsight.conversation.transitions import NodeContext, NodeServices, Transition

__all__ = [
    "ConversationStateMachine",
    "TurnResult",
    "NodeContext",
    "NodeServices",
    "Transition",
    "ProfileExtractor",
    "can_recommend",
    "GuardrailPipeline",
    "SessionStore",
]
