"""Tests for the dialogue state machine."""

import pytest

from carinsight.conversation.state_machine import ConversationStateMachine, coerce_node
from carinsight.conversation.transitions import NodeServices, goto, reply
from carinsight.schemas.conversation_schema import ConversationSession, DialogueNode, Speaker
from tests.conftest import make_recommendation, make_session


def _assistant_count(session: ConversationSession) -> int:
    return sum(1 for m in session.messages if m.speaker == Speaker.ASSISTANT)


class TestCoerceNode:
    def test_known_value(self):
        assert coerce_node("discovery") == DialogueNode.DISCOVERY

    def test_enum_passthrough(self):
        assert coerce_node(DialogueNode.END) == DialogueNode.END

    def test_unknown_value_falls_back_to_greeting(self):
        assert coerce_node("nowhere") == DialogueNode.GREETING


class TestGreetingFlow:
    @pytest.mark.asyncio
    async def test_plain_hello_asks_for_name(self, machine):
        session = ConversationSession(session_id="sess-1")
        result = await machine.run_turn(session, "Olá")

        assert result.node == DialogueNode.GREETING
        assert "nome" in result.reply
        assert result.trace == [DialogueNode.GREETING]
        assert [m.speaker for m in session.messages] == [Speaker.HUMAN, Speaker.ASSISTANT]

    @pytest.mark.asyncio
    async def test_name_moves_to_discovery(self, machine):
        session = ConversationSession(session_id="sess-1")
        await machine.run_turn(session, "Olá")
        result = await machine.run_turn(session, "Oi, sou Maria")

        assert result.node == DialogueNode.DISCOVERY
        assert "Maria" in result.reply
        assert session.profile.customer_name == "Maria"

    @pytest.mark.asyncio
    async def test_name_and_intent_in_one_message(self, machine):
        session = ConversationSession(session_id="sess-1")
        result = await machine.run_turn(session, "Oi, sou Ana e quero um SUV até 120 mil")

        assert result.node == DialogueNode.DISCOVERY
        assert session.profile.customer_name == "Ana"
        assert session.profile.budget == 120000
        assert session.profile.body_type == "suv"


class TestDiscoveryToRecommendation:
    @pytest.mark.asyncio
    async def test_single_message_reaches_recommendation(self, machine):
        session = make_session(DialogueNode.DISCOVERY)

        result = await machine.run_turn(session, "Quero um sedan até 100 mil")

        assert result.node == DialogueNode.RECOMMENDATION
        assert result.trace == [
            DialogueNode.DISCOVERY,
            DialogueNode.SEARCH,
            DialogueNode.RECOMMENDATION,
        ]
        assert len(session.recommendations) == 3
        assert session.profile.budget == 100000
        assert session.profile.shown_recommendation is True
        assert "1. Chevrolet Onix Plus 2023" in result.reply
        assert _assistant_count(session) == 1

    @pytest.mark.asyncio
    async def test_full_opening(self, machine):
        session = ConversationSession(session_id="sess-1")
        await machine.run_turn(session, "Oi, sou Pedro")
        result = await machine.run_turn(session, "Quero um sedan até 100 mil")

        assert result.node == DialogueNode.RECOMMENDATION
        assert [v.vehicle_id for v in session.profile.last_shown_vehicles] == [
            "veh-003", "veh-004", "veh-001",
        ]
        assert _assistant_count(session) == 2

    @pytest.mark.asyncio
    async def test_vague_message_asks_a_question(self, machine):
        session = make_session(DialogueNode.DISCOVERY, profile={"customer_name": "Pedro"})

        result = await machine.run_turn(session, "não sei ainda")

        assert result.node == DialogueNode.DISCOVERY
        assert result.reply.startswith("Pedro, ")
        assert session.metadata.loop_count == 1


class TestRobustness:
    @pytest.mark.asyncio
    async def test_unknown_stored_node_restarts_at_greeting(self, machine):
        session = make_session()
        session.node = "nowhere"

        result = await machine.run_turn(session, "Olá")

        assert result.trace[0] == DialogueNode.GREETING
        assert result.node == DialogueNode.GREETING

    @pytest.mark.asyncio
    async def test_missing_handler_falls_back_to_greeting(self):
        async def greeting(ctx):
            return reply(DialogueNode.GREETING, "oi")

        machine = ConversationStateMachine(handlers={DialogueNode.GREETING: greeting})
        session = make_session(DialogueNode.NEGOTIATION)

        result = await machine.run_turn(session, "quando?")

        assert result.reply == "oi"
        assert result.trace == [DialogueNode.GREETING]

    @pytest.mark.asyncio
    async def test_step_cap_produces_apology(self):
        async def loop(ctx):
            return goto(DialogueNode.SEARCH)

        machine = ConversationStateMachine(
            handlers={DialogueNode.GREETING: loop, DialogueNode.SEARCH: loop},
            max_steps=4,
        )
        session = make_session()

        result = await machine.run_turn(session, "Olá")

        assert len(result.trace) == 4
        assert "Desculpe" in result.reply
        assert session.metadata.error_count == 1
        assert _assistant_count(session) == 1

    @pytest.mark.asyncio
    async def test_handler_errors_propagate(self):
        async def broken(ctx):
            raise RuntimeError("boom")

        machine = ConversationStateMachine(handlers={DialogueNode.GREETING: broken})
        with pytest.raises(RuntimeError, match="boom"):
            await machine.run_turn(make_session(), "Olá")


class TestDeltaApplication:
    @pytest.mark.asyncio
    async def test_recommendations_capped_at_three(self):
        recs = [make_recommendation(f"veh-{i}") for i in range(5)]

        async def handler(ctx):
            return reply(DialogueNode.RECOMMENDATION, "lista", recommendations=recs)

        machine = ConversationStateMachine(handlers={DialogueNode.GREETING: handler})
        session = make_session()
        await machine.run_turn(session, "Olá")

        assert [r.vehicle_id for r in session.recommendations] == ["veh-0", "veh-1", "veh-2"]

    @pytest.mark.asyncio
    async def test_none_keeps_recommendations(self):
        kept = [make_recommendation("veh-1")]

        async def handler(ctx):
            return reply(DialogueNode.RECOMMENDATION, "ok")

        machine = ConversationStateMachine(handlers={DialogueNode.RECOMMENDATION: handler})
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=kept)
        await machine.run_turn(session, "hmm")

        assert session.recommendations == kept

    @pytest.mark.asyncio
    async def test_flags_persist_but_turn_flags_reset(self):
        async def first(ctx):
            return reply(DialogueNode.DISCOVERY, "a", flags=["visit_requested"])

        async def second(ctx):
            return reply(DialogueNode.DISCOVERY, "b", flags=["financing_simulated"])

        machine = ConversationStateMachine(
            handlers={DialogueNode.GREETING: first, DialogueNode.DISCOVERY: second}
        )
        session = make_session()
        await machine.run_turn(session, "1")
        result = await machine.run_turn(session, "2")

        assert result.turn_flags == ["financing_simulated"]
        assert session.metadata.flags == ["visit_requested", "financing_simulated"]

    @pytest.mark.asyncio
    async def test_only_first_handler_sees_the_utterance(self):
        seen = []

        async def first(ctx):
            seen.append(ctx.utterance)
            return goto(DialogueNode.DISCOVERY)

        async def second(ctx):
            seen.append(ctx.utterance)
            seen.append(ctx.latest_message)
            return reply(DialogueNode.DISCOVERY, "ok")

        machine = ConversationStateMachine(
            handlers={DialogueNode.GREETING: first, DialogueNode.DISCOVERY: second}
        )
        await machine.run_turn(make_session(), "quero um carro")

        assert seen == ["quero um carro", None, "quero um carro"]

    @pytest.mark.asyncio
    async def test_profile_merge_keeps_earlier_fields(self):
        async def handler(ctx):
            return reply(DialogueNode.DISCOVERY, "ok", profile={"body_type": "suv"})

        machine = ConversationStateMachine(
            NodeServices(), handlers={DialogueNode.DISCOVERY: handler}
        )
        session = make_session(DialogueNode.DISCOVERY, profile={"budget": 90000})
        await machine.run_turn(session, "suv")

        assert session.profile.budget == 90000
        assert session.profile.body_type == "suv"
