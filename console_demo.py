"""
Offline console demo: runs a full sales conversation in the terminal.

Uses the real state machine, extractor, ranker, calculators and guardrails
over the sample inventory. Without API keys no network call is made; with
OPENAI_API_KEY / GEMINI_API_KEY set, embeddings and free-form answers are
enabled as well.

Usage:
    python console_demo.py
    python console_demo.py --scenario financing
    python console_demo.py --vehicle veh-001
"""

import argparse
import asyncio
from typing import Optional

from carinsight.chat_service import ChatService, build_chat_service
from carinsight.config import settings
from carinsight.schemas.conversation_schema import TERMINAL_NODES, ChatResponse, DialogueNode
from carinsight.schemas.vehicle_schema import SearchFilters
from carinsight.tools.embeddings import OpenAIEmbeddingProvider, index_vehicles
from carinsight.tools.inventory import InMemoryInventoryStore
from carinsight.tools.llm_router import build_default_providers
from carinsight.utils import format_brl

BLUE = "\033[94m"
GREEN = "\033[92m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


class ConsoleSession:
    """Drives a ChatService session from the terminal."""

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[str]] = {
        "sedan": [
            "Oi, sou Pedro",
            "Quero um sedan até 100 mil para trabalhar de Uber",
            "1",
            "Quero agendar uma visita",
            "Obrigado, tchau",
        ],
        "financing": [
            "Olá, me chamo Ana",
            "Procuro um SUV automático até 120 mil",
            "2",
            "Quero simular um financiamento",
            "30 mil de entrada em 60x",
            "Quero falar com um consultor para aprovar",
        ],
        "trade_in": [
            "Oi, sou Carla",
            "Preciso de uma picape para o trabalho",
            "Tenho um carro pra dar na troca",
            "É um Gol 2015 com 90 mil km",
            "voltar para as opções",
        ],
        "handoff": [
            "Oi, sou Rafaek",
            "Rafael",
            "Quero falar com um vendedor",
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(self, service: ChatService, vehicle_id: Optional[str] = None) -> None:
        self.service = service
        self.vehicle_id = vehicle_id
        self.session_id: Optional[str] = None
        self.node = DialogueNode.GREETING

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[{settings.business.name}]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _show(self, response: ChatResponse) -> None:
        self.node = response.current_node
        self.agent_say(response.response)
        self.system_log(f"Node: {response.current_node.value}")
        if response.suggested_actions:
            self.system_log(
                "Actions: " + ", ".join(a.value for a in response.suggested_actions)
            )
        for rec in response.recommendations:
            self.system_log(
                f"{rec.vehicle.display_name} R$ {format_brl(rec.vehicle.price)} "
                f"(score {rec.match_score})"
            )

    async def _start(self) -> None:
        started = await self.service.start_session(vehicle_id=self.vehicle_id)
        self.session_id = started["session_id"]
        self.agent_say(started["greeting"])
        self.system_log(f"Session: {self.session_id}")

    async def _send(self, text: str) -> None:
        response = await self.service.send_message(self.session_id, text)
        self._show(response)

    def _print_trace(self) -> None:
        state = self.service.get_state(self.session_id) or {}
        self.system_log(f"Profile: {state.get('profile')}")
        self.system_log(f"Flags: {state.get('metadata', {}).get('flags')}")

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  CARINSIGHT SALES ASSISTANT - Scenario: {scenario}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

        await self._start()
        for step in steps:
            if self.node in TERMINAL_NODES:
                break
            print(f"\n{BLUE}[Cliente] {RESET}{step}")
            await self._send(step)

        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  Scenario '{scenario}' complete.{RESET}")
        self._print_trace()
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def run(self) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  CARINSIGHT SALES ASSISTANT - Console Demo{RESET}")
        print(f"{BOLD}  Type 'quit' to exit{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

        await self._start()
        while self.node not in TERMINAL_NODES:
            user_input = input(f"\n{BLUE}[Cliente] {RESET}").strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                return
            if len(user_input) > self.MAX_INPUT_LENGTH:
                self.agent_say("Essa mensagem ficou bem longa. Pode resumir pra mim?")
                continue
            await self._send(user_input)

        print(f"\n{BOLD}{'=' * 60}{RESET}")
        self._print_trace()
        print(f"{BOLD}{'=' * 60}{RESET}")


async def build_service() -> ChatService:
    """ChatService over the sample inventory, with LLM features when keys exist."""
    inventory = InMemoryInventoryStore()
    embeddings = OpenAIEmbeddingProvider()
    if embeddings.available:
        vehicles = await inventory.find_by_filters(SearchFilters(), settings.search.scan_limit)
        await index_vehicles(vehicles, embeddings)
    else:
        embeddings = None
    return build_chat_service(
        inventory=inventory,
        embeddings=embeddings,
        providers=build_default_providers(),
    )


async def _main(scenario: Optional[str], vehicle_id: Optional[str]) -> None:
    session = ConsoleSession(await build_service(), vehicle_id)
    if scenario:
        await session.run_scenario(scenario)
    else:
        await session.run()


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    parser.add_argument(
        "--vehicle",
        default=None,
        help="Start the conversation from a listing id (e.g. veh-001)",
    )
    args = parser.parse_args()
    asyncio.run(_main(args.scenario, args.vehicle))


if __name__ == "__main__":
    main()
