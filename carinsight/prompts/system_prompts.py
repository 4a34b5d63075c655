"""
System prompt for free-text questions about the vehicles on screen.

The node logic templates every structured reply itself. The LLM is only
asked to answer open questions ("o Corolla é econômico?") about vehicles
that were already recommended, so the prompt pins it to those listings.
Business-specific values are injected from configuration, not hardcoded.
"""

from typing import Optional

from carinsight.config import settings
from carinsight.schemas.profile_schema import CustomerProfile
from carinsight.schemas.vehicle_schema import VehicleRecommendation
from carinsight.tools.llm_router import ChatMessage
from carinsight.utils import format_brl

_biz = settings.business

BUSINESS_CONTEXT = f"""
Você é a assistente virtual da {_biz.name}, um marketplace de carros seminovos.
Você ajuda o cliente a escolher um carro entre as opções já apresentadas.
"""

STYLE_RULES = """
REGRAS:
- Responda em português do Brasil, em no máximo 3 frases curtas.
- Fale apenas dos veículos listados abaixo. Se não souber, diga que vai confirmar com um consultor.
- Nunca invente preços, descontos, garantias, taxas ou histórico do veículo.
- Só cite preços exatamente como aparecem na lista.
- Não fale de assuntos fora de carros e da compra.
"""

QA_SYSTEM_PROMPT = f"""{BUSINESS_CONTEXT}
{STYLE_RULES}"""

HISTORY_TURNS = 6


def describe_listings(recommendations: list[VehicleRecommendation]) -> str:
    """Compact listing block the model is allowed to talk about."""
    lines = []
    for index, rec in enumerate(recommendations, start=1):
        v = rec.vehicle
        line = (
            f"{index}. {v.display_name} | R$ {format_brl(v.price)} | "
            f"{format_brl(v.mileage) if v.mileage else '?'} km | {v.body_type}"
        )
        if v.features:
            line += f" | itens: {', '.join(v.features)}"
        lines.append(line)
    return "\n".join(lines) if lines else "(nenhum veículo listado)"


def build_vehicle_qa_messages(
    profile: CustomerProfile,
    recommendations: list[VehicleRecommendation],
    question: str,
    history: Optional[list[ChatMessage]] = None,
) -> list[ChatMessage]:
    """Role-tagged messages for answering ``question`` about the listings."""
    context = [f"VEÍCULOS APRESENTADOS:\n{describe_listings(recommendations)}"]
    if profile.customer_name:
        context.append(f"Nome do cliente: {profile.customer_name}")
    if profile.budget:
        context.append(f"Orçamento do cliente: R$ {format_brl(profile.budget)}")
    if profile.usage:
        context.append(f"Uso pretendido: {profile.usage.value}")

    messages: list[ChatMessage] = [
        {"role": "system", "content": QA_SYSTEM_PROMPT + "\n" + "\n".join(context)},
    ]
    messages.extend((history or [])[-HISTORY_TURNS:])
    messages.append({"role": "user", "content": question})
    return messages
