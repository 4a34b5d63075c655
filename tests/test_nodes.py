"""Tests for the individual dialogue node handlers."""

import pytest

from carinsight.conversation.transitions import NodeServices
from carinsight.nodes.discovery import discovery_node
from carinsight.nodes.financing import financing_node, parse_down_payment, parse_months
from carinsight.nodes.greeting import SEEDED_REASONING, greeting_node
from carinsight.nodes.negotiation import negotiation_node
from carinsight.nodes.recommendation import recommendation_node
from carinsight.nodes.search import search_node
from carinsight.nodes.terminal import end_node, handoff_node
from carinsight.nodes.trade_in import trade_in_node
from carinsight.schemas.conversation_schema import DialogueNode, Speaker
from carinsight.tools.vehicle_search import InventorySearchError
from tests.conftest import (
    FakeProvider,
    FakeRanker,
    make_context,
    make_recommendation,
    make_router,
    make_session,
    shown_entry,
)


def _recs():
    return [
        make_recommendation("veh-1", price=95000),
        make_recommendation("veh-2", make="Honda", model="Civic", price=105000),
    ]


class TestGreetingNode:
    @pytest.mark.asyncio
    async def test_seeded_vehicle_is_presented(self):
        rec = make_recommendation("veh-1", score=100, reasoning=SEEDED_REASONING)
        session = make_session(recommendations=[rec])

        transition = await greeting_node(
            make_context(session, "Estou interessado no Toyota Corolla 2022")
        )

        assert transition.node == DialogueNode.RECOMMENDATION
        assert "Toyota Corolla 2022" in transition.delta.reply
        assert "qual é o seu nome" in transition.delta.reply
        assert transition.delta.profile["shown_recommendation"] is True

    @pytest.mark.asyncio
    async def test_known_name_goes_to_discovery_silently(self):
        session = make_session(profile={"customer_name": "Maria"})
        transition = await greeting_node(make_context(session, "quero um carro"))
        assert transition.node == DialogueNode.DISCOVERY
        assert transition.delta.reply is None

    @pytest.mark.asyncio
    async def test_intent_without_name_stays(self):
        session = make_session()
        transition = await greeting_node(make_context(session, "quero um SUV"))
        assert transition.node == DialogueNode.GREETING
        assert transition.delta.profile == {"body_type": "suv"}
        assert "Qual é o seu nome?" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_name_only(self):
        session = make_session()
        transition = await greeting_node(make_context(session, "me chamo Carla"))
        assert transition.node == DialogueNode.DISCOVERY
        assert transition.delta.profile == {"customer_name": "Carla"}
        assert "Olá, Carla!" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_welcome_carries_ai_disclaimer(self):
        transition = await greeting_node(make_context(make_session(), "Olá"))
        assert "inteligência artificial" in transition.delta.reply


class TestDiscoveryNode:
    @pytest.mark.asyncio
    async def test_name_correction(self):
        session = make_session(DialogueNode.DISCOVERY, profile={"customer_name": "Rafaek"})
        transition = await discovery_node(make_context(session, "Rafael"))

        assert transition.node == DialogueNode.DISCOVERY
        assert transition.delta.profile == {"customer_name": "Rafael"}
        assert transition.delta.reply.startswith("Desculpa pelo erro, Rafael!")

    @pytest.mark.asyncio
    async def test_handoff_request(self):
        session = make_session(DialogueNode.DISCOVERY)
        transition = await discovery_node(make_context(session, "Quero falar com um vendedor"))
        assert transition.node == DialogueNode.HANDOFF
        assert transition.delta.flags == ["handoff_requested"]
        assert transition.delta.reply is None

    @pytest.mark.asyncio
    async def test_exit(self):
        session = make_session(DialogueNode.DISCOVERY)
        transition = await discovery_node(make_context(session, "sair"))
        assert transition.node == DialogueNode.END

    @pytest.mark.asyncio
    async def test_financing_keyword(self):
        session = make_session(DialogueNode.DISCOVERY)
        transition = await discovery_node(make_context(session, "Quero financiar até 80 mil"))
        assert transition.node == DialogueNode.FINANCING
        assert transition.delta.profile["financing"] == {"wants_financing": True}
        assert transition.delta.profile["budget"] == 80000

    @pytest.mark.asyncio
    async def test_trade_in_does_not_touch_buyer_profile(self):
        session = make_session(DialogueNode.DISCOVERY)
        transition = await discovery_node(
            make_context(session, "Tenho um Gol 2015 pra dar na troca")
        )
        assert transition.node == DialogueNode.TRADE_IN
        assert transition.delta.profile == {"trade_in": {"has_trade_in": True}}

    @pytest.mark.asyncio
    async def test_enough_profile_goes_to_search(self):
        session = make_session(DialogueNode.DISCOVERY)
        transition = await discovery_node(make_context(session, "Preciso de um hatch"))
        assert transition.node == DialogueNode.SEARCH
        assert transition.delta.profile == {"body_type": "hatch"}

    @pytest.mark.asyncio
    async def test_known_budget_completes_profile(self):
        session = make_session(DialogueNode.DISCOVERY, profile={"budget": 70000})
        transition = await discovery_node(make_context(session, "não sei"))
        assert transition.node == DialogueNode.SEARCH

    @pytest.mark.asyncio
    async def test_asks_question_and_counts_loop(self):
        session = make_session(DialogueNode.DISCOVERY)
        transition = await discovery_node(make_context(session, "hmm"))
        assert transition.node == DialogueNode.DISCOVERY
        assert transition.delta.loop_increment == 1
        assert "orçamento" in transition.delta.reply
        assert "consultor" not in transition.delta.reply

    @pytest.mark.asyncio
    async def test_repeated_confusion_offers_consultant(self):
        session = make_session(DialogueNode.DISCOVERY)
        session.metadata.loop_count = 2
        transition = await discovery_node(make_context(session, "hmm"))
        assert transition.node == DialogueNode.DISCOVERY
        assert "consultor" in transition.delta.reply


class TestSearchNode:
    @pytest.mark.asyncio
    async def test_without_ranker(self):
        session = make_session(DialogueNode.SEARCH)
        transition = await search_node(make_context(session, None))
        assert transition.node == DialogueNode.RECOMMENDATION
        assert transition.delta.recommendations == []
        assert transition.delta.flags == ["no_results"]

    @pytest.mark.asyncio
    async def test_results_are_remembered(self):
        ranker = FakeRanker(_recs())
        session = make_session(DialogueNode.SEARCH, profile={"body_type": "sedan"})
        transition = await search_node(make_context(session, None, NodeServices(ranker=ranker)))

        assert transition.node == DialogueNode.RECOMMENDATION
        assert [r.vehicle_id for r in transition.delta.recommendations] == ["veh-1", "veh-2"]
        shown = transition.delta.profile["last_shown_vehicles"]
        assert [v["vehicle_id"] for v in shown] == ["veh-1", "veh-2"]
        assert transition.delta.profile["shown_recommendation"] is True
        assert ranker.calls[0]["exclude_ids"] == []

    @pytest.mark.asyncio
    async def test_more_options_excludes_shown(self):
        recs = _recs()
        ranker = FakeRanker(recs)
        session = make_session(
            DialogueNode.SEARCH, profile={"last_shown_vehicles": [shown_entry(recs[0])]}
        )
        ctx = make_context(
            session, None, NodeServices(ranker=ranker), turn_flags=["more_options_requested"]
        )
        transition = await search_node(ctx)

        assert ranker.calls[0]["exclude_ids"] == ["veh-1"]
        assert [r.vehicle_id for r in transition.delta.recommendations] == ["veh-2"]

    @pytest.mark.asyncio
    async def test_search_error(self):
        ranker = FakeRanker(error=InventorySearchError("down"))
        session = make_session(DialogueNode.SEARCH)
        transition = await search_node(make_context(session, None, NodeServices(ranker=ranker)))

        assert transition.node == DialogueNode.RECOMMENDATION
        assert transition.delta.recommendations == []
        assert transition.delta.flags == ["search_error"]
        assert transition.delta.error_increment == 1

    @pytest.mark.asyncio
    async def test_empty_results(self):
        session = make_session(DialogueNode.SEARCH)
        ctx = make_context(session, None, NodeServices(ranker=FakeRanker([])))
        transition = await search_node(ctx)
        assert transition.delta.flags == ["no_results"]


class TestRecommendationNode:
    @pytest.mark.asyncio
    async def test_entry_renders_list(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())
        transition = await recommendation_node(make_context(session, None))
        assert "1. Toyota Corolla 2022" in transition.delta.reply
        assert "2. Honda Civic 2022" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_entry_after_search_error(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=[])
        ctx = make_context(session, None, turn_flags=["search_error"])
        transition = await recommendation_node(ctx)
        assert "problema ao consultar o estoque" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_entry_without_results(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=[])
        transition = await recommendation_node(make_context(session, None))
        assert "não encontrei veículos" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_selection_shows_details(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())
        transition = await recommendation_node(make_context(session, "2"))

        assert transition.node == DialogueNode.RECOMMENDATION
        assert transition.delta.profile == {"selected_vehicle_id": "veh-2"}
        assert transition.delta.flags == ["viewed_vehicle_veh-2"]
        assert "Preço: R$ 105.000" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_selection_out_of_range(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())
        transition = await recommendation_node(make_context(session, "3"))
        assert "1, 2" in transition.delta.reply
        assert transition.delta.profile == {}

    @pytest.mark.asyncio
    async def test_visit_request(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())
        transition = await recommendation_node(make_context(session, "Quero agendar uma visita"))
        assert transition.node == DialogueNode.NEGOTIATION
        assert transition.delta.flags == ["visit_requested"]

    @pytest.mark.asyncio
    async def test_handoff_request(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())
        transition = await recommendation_node(make_context(session, "Quero falar com um vendedor"))
        assert transition.node == DialogueNode.HANDOFF

    @pytest.mark.asyncio
    async def test_financing_request(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())
        transition = await recommendation_node(make_context(session, "Quero simular um financiamento"))
        assert transition.node == DialogueNode.FINANCING

    @pytest.mark.asyncio
    async def test_more_options(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())
        transition = await recommendation_node(make_context(session, "tem mais opções?"))
        assert transition.node == DialogueNode.SEARCH
        assert transition.delta.flags == ["more_options_requested"]
        assert transition.delta.profile == {"shown_recommendation": False}

    @pytest.mark.asyncio
    async def test_refinement_triggers_new_search(self):
        session = make_session(
            DialogueNode.RECOMMENDATION, profile={"body_type": "sedan"}, recommendations=_recs()
        )
        transition = await recommendation_node(make_context(session, "prefiro um SUV"))
        assert transition.node == DialogueNode.SEARCH
        assert transition.delta.profile["body_type"] == "suv"

    @pytest.mark.asyncio
    async def test_question_answered_by_llm(self):
        provider = FakeProvider("openai", reply="Sim, o Corolla é bem econômico.")
        services = NodeServices(router=make_router(provider))
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())

        transition = await recommendation_node(
            make_context(session, "O Corolla é econômico?", services)
        )

        assert transition.delta.reply == "Sim, o Corolla é bem econômico."
        prompt = provider.last_messages
        assert prompt[0]["role"] == "system"
        assert "Toyota Corolla 2022" in prompt[0]["content"]
        assert prompt[-1] == {"role": "user", "content": "O Corolla é econômico?"}

    @pytest.mark.asyncio
    async def test_answer_with_invented_price_is_replaced(self):
        provider = FakeProvider("openai", reply="Consigo por R$ 80.000 pra você.")
        services = NodeServices(router=make_router(provider))
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())

        transition = await recommendation_node(
            make_context(session, "Qual o menor valor do Civic?", services)
        )

        assert "confirmar com um consultor" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_all_providers_down(self):
        services = NodeServices(router=make_router(FakeProvider("openai", fail=True)))
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())

        transition = await recommendation_node(
            make_context(session, "Qual tem o porta-malas maior?", services)
        )

        assert transition.delta.flags == ["llm_unavailable"]
        assert "não consegui responder" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_out_of_scope_question(self):
        provider = FakeProvider("openai")
        services = NodeServices(router=make_router(provider))
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())

        transition = await recommendation_node(
            make_context(session, "O que você acha de bitcoin?", services)
        )

        assert "foge do que eu consigo ajudar" in transition.delta.reply
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_question_without_router_gets_help(self):
        session = make_session(DialogueNode.RECOMMENDATION, recommendations=_recs())
        transition = await recommendation_node(make_context(session, "Qual é mais bonito?"))
        assert "Posso te ajudar com algo mais?" in transition.delta.reply


class TestFinancingParsers:
    @pytest.mark.parametrize("text, expected", [
        ("20 mil de entrada", 20000),
        ("entrada de 15000", 15000),
        ("R$ 12.500 de entrada", 12500),
        ("15 de entrada", 15000),
        ("30%", 30000),
        ("em 48x", None),
    ])
    def test_down_payment(self, text, expected):
        assert parse_down_payment(text, 100000) == expected

    @pytest.mark.parametrize("text, expected", [
        ("em 48x", 48),
        ("60 meses", 60),
        ("36 parcelas", 36),
        ("00x", None),
        ("sem prazo", None),
    ])
    def test_months(self, text, expected):
        assert parse_months(text) == expected


class TestFinancingNode:
    @pytest.mark.asyncio
    async def test_without_price_asks_budget(self):
        session = make_session(DialogueNode.FINANCING)
        transition = await financing_node(make_context(session, "Quero financiar"))
        assert transition.node == DialogueNode.DISCOVERY
        assert "orçamento" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_entry_simulates_selected_vehicle_with_defaults(self):
        recs = [make_recommendation("veh-1", price=100000)]
        session = make_session(
            DialogueNode.FINANCING,
            profile={"selected_vehicle_id": "veh-1"},
            recommendations=recs,
        )
        session.add_message(Speaker.HUMAN, "Quero simular um financiamento")

        transition = await financing_node(make_context(session, None))

        assert transition.node == DialogueNode.FINANCING
        assert "Simulação para o Toyota Corolla 2022" in transition.delta.reply
        assert "48x de R$ 2.498" in transition.delta.reply
        assert "36x" in transition.delta.reply
        assert "60x" in transition.delta.reply
        assert transition.delta.profile["financing"] == {
            "wants_financing": True,
            "down_payment": 20000,
            "months": 48,
        }
        assert transition.delta.flags == ["financing_simulated"]

    @pytest.mark.asyncio
    async def test_custom_terms_use_first_shown_vehicle(self):
        rec = make_recommendation("veh-1", price=100000)
        session = make_session(
            DialogueNode.FINANCING,
            profile={"last_shown_vehicles": [shown_entry(rec)]},
        )

        transition = await financing_node(make_context(session, "20 mil de entrada em 60x"))

        assert transition.delta.profile["financing"]["down_payment"] == 20000
        assert transition.delta.profile["financing"]["months"] == 60
        assert "60x de R$" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_budget_as_reference_price(self):
        session = make_session(DialogueNode.FINANCING, profile={"budget": 80000})
        transition = await financing_node(make_context(session, "quero financiar em 48 meses"))
        assert "Valor do veículo: R$ 80.000" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_down_payment_too_high(self):
        session = make_session(DialogueNode.FINANCING, profile={"budget": 95000})
        transition = await financing_node(make_context(session, "100 mil de entrada"))
        assert transition.node == DialogueNode.FINANCING
        assert "não precisa financiar" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_unclear_message_asks_for_terms(self):
        session = make_session(DialogueNode.FINANCING, profile={"budget": 95000})
        transition = await financing_node(make_context(session, "hmm"))
        assert "Quanto você pode dar de entrada" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_back_to_options(self):
        session = make_session(DialogueNode.FINANCING, recommendations=_recs())
        transition = await financing_node(make_context(session, "voltar para as opções"))
        assert transition.node == DialogueNode.RECOMMENDATION

    @pytest.mark.asyncio
    async def test_close_deal(self):
        session = make_session(DialogueNode.FINANCING, profile={"budget": 95000})
        transition = await financing_node(make_context(session, "Quero aprovar com o consultor"))
        assert transition.node == DialogueNode.NEGOTIATION


class TestTradeInNode:
    @pytest.mark.asyncio
    async def test_entry_asks_for_details(self):
        session = make_session(DialogueNode.TRADE_IN)
        session.add_message(Speaker.HUMAN, "Tenho um carro pra dar na troca")

        transition = await trade_in_node(make_context(session, None))

        assert transition.node == DialogueNode.TRADE_IN
        assert "marca e modelo, ano, quilometragem aproximada" in transition.delta.reply
        assert transition.delta.profile == {"trade_in": {"has_trade_in": True}}

    @pytest.mark.asyncio
    async def test_full_details_produce_estimate(self):
        session = make_session(DialogueNode.TRADE_IN)
        transition = await trade_in_node(make_context(session, "É um Gol 2015 com 90 mil km"))

        trade_in = transition.delta.profile["trade_in"]
        assert trade_in["brand"] == "volkswagen"
        assert trade_in["year"] == 2015
        assert trade_in["mileage"] == 90000
        assert trade_in["estimated_value"] > 0
        assert transition.delta.flags == ["trade_in_evaluated"]
        assert "Avaliação estimada do seu Volkswagen Gol 2015" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_details_accumulate_across_messages(self):
        session = make_session(
            DialogueNode.TRADE_IN,
            profile={"trade_in": {"has_trade_in": True, "brand": "fiat", "model": "uno"}},
        )
        transition = await trade_in_node(make_context(session, "2012"))
        assert transition.delta.flags == ["trade_in_evaluated"]
        assert "Fiat Uno 2012" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_invalid_details(self, monkeypatch):
        def reject(*args, **kwargs):
            raise ValueError("year 2031 is after 2026")

        monkeypatch.setattr("carinsight.nodes.trade_in.estimate_trade_in", reject)
        session = make_session(DialogueNode.TRADE_IN)
        transition = await trade_in_node(make_context(session, "Gol 2015"))
        assert "não parece certo" in transition.delta.reply
        assert transition.delta.flags == []

    @pytest.mark.asyncio
    async def test_followup_after_evaluation(self):
        session = make_session(DialogueNode.TRADE_IN)
        session.metadata.add_flag("trade_in_evaluated")
        transition = await trade_in_node(make_context(session, "hmm"))
        assert "Já tenho a estimativa" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_back_to_options(self):
        session = make_session(DialogueNode.TRADE_IN, recommendations=_recs())
        transition = await trade_in_node(make_context(session, "voltar para as opções"))
        assert transition.node == DialogueNode.RECOMMENDATION

    @pytest.mark.asyncio
    async def test_go_to_financing(self):
        session = make_session(DialogueNode.TRADE_IN)
        transition = await trade_in_node(make_context(session, "e o financiamento?"))
        assert transition.node == DialogueNode.FINANCING


class TestNegotiationNode:
    @pytest.mark.asyncio
    async def test_entry_summary(self):
        session = make_session(
            DialogueNode.NEGOTIATION,
            profile={"customer_name": "Pedro Souza", "budget": 100000, "selected_vehicle_id": "veh-2"},
            recommendations=_recs(),
        )
        session.metadata.add_flag("visit_requested")

        transition = await negotiation_node(make_context(session, None))

        reply = transition.delta.reply
        assert reply.startswith("Perfeito, Pedro!")
        assert "Carro de interesse: Honda Civic 2022 (R$ 105.000)" in reply
        assert "agendar sua visita" in reply
        assert "30 minutos" in reply
        assert transition.delta.flags == ["negotiation_started"]

    @pytest.mark.asyncio
    async def test_back_to_options(self):
        session = make_session(DialogueNode.NEGOTIATION, recommendations=_recs())
        transition = await negotiation_node(make_context(session, "quero ver os carros de novo"))
        assert transition.node == DialogueNode.RECOMMENDATION

    @pytest.mark.asyncio
    async def test_new_search_resets_recommendations(self):
        session = make_session(DialogueNode.NEGOTIATION, recommendations=_recs())
        transition = await negotiation_node(make_context(session, "quero buscar outro tipo"))
        assert transition.node == DialogueNode.DISCOVERY
        assert transition.delta.recommendations == []

    @pytest.mark.asyncio
    async def test_farewell(self):
        session = make_session(DialogueNode.NEGOTIATION)
        transition = await negotiation_node(make_context(session, "Obrigado!"))
        assert transition.node == DialogueNode.END

    @pytest.mark.asyncio
    async def test_timing_question(self):
        session = make_session(DialogueNode.NEGOTIATION)
        transition = await negotiation_node(make_context(session, "quando vão me ligar?"))
        assert "30 minutos" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_anything_else_is_forwarded(self):
        session = make_session(DialogueNode.NEGOTIATION)
        transition = await negotiation_node(make_context(session, "ok"))
        assert "Já passei suas informações" in transition.delta.reply


class TestTerminalNodes:
    @pytest.mark.asyncio
    async def test_handoff_entry(self):
        session = make_session(DialogueNode.HANDOFF, profile={"customer_name": "Ana"})
        transition = await handoff_node(make_context(session, None))
        assert transition.node == DialogueNode.HANDOFF
        assert "consultor" in transition.delta.reply
        assert transition.delta.flags == ["handoff_requested"]

    @pytest.mark.asyncio
    async def test_message_after_handoff(self):
        session = make_session(DialogueNode.HANDOFF)
        transition = await handoff_node(make_context(session, "oi?"))
        assert transition.node == DialogueNode.HANDOFF
        assert "já foi encaminhado" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_end_with_consultant_pending(self):
        session = make_session(DialogueNode.END)
        session.metadata.add_flag("negotiation_started")
        transition = await end_node(make_context(session, None))
        assert transition.node == DialogueNode.END
        assert "Nosso consultor vai entrar em contato" in transition.delta.reply

    @pytest.mark.asyncio
    async def test_plain_end(self):
        session = make_session(DialogueNode.END)
        transition = await end_node(make_context(session, "tchau"))
        assert "Nosso consultor" not in transition.delta.reply
        assert transition.delta.flags == ["conversation_ended"]
