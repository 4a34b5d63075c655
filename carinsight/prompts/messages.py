"""Customer-facing message templates (pt-BR) rendered by the dialogue nodes."""

from typing import Optional

from carinsight.config import settings
from carinsight.schemas.profile_schema import CustomerProfile, TradeInInfo
from carinsight.schemas.quote_schema import Confidence, FinancingSimulation, TradeInEstimate
from carinsight.schemas.vehicle_schema import RecommendedVehicle, VehicleRecommendation
from carinsight.utils import first_name, format_brl

_biz = settings.business

AI_DISCLAIMER = "Importante: sou uma inteligência artificial e posso cometer erros."

BODY_NAMES = {
    "sedan": "sedan",
    "hatch": "hatch",
    "suv": "SUV",
    "pickup": "picape",
    "minivan": "minivan",
}

USAGE_NAMES = {
    "city": "uso na cidade",
    "trip": "viagens e família",
    "work": "trabalho",
    "mixed": "uso misto",
    "rideshare": "aplicativo",
}

CONFIDENCE_NAMES = {
    Confidence.HIGH: "alta",
    Confidence.MEDIUM: "média",
    Confidence.LOW: "baixa",
}


def _hello(name: Optional[str] = None) -> str:
    greeting = f"Olá, {first_name(name)}!" if name else "Olá!"
    return f"{greeting} Sou a assistente virtual da {_biz.name}.\n\n{AI_DISCLAIMER}\n\n"


def _km(mileage: int) -> str:
    return f"{format_brl(mileage)} km" if mileage else "km não informada"


def describe_interest(profile_update: dict) -> str:
    """Short description of what the customer said they want."""
    parts: list[str] = []
    body = profile_update.get("body_type")
    if body:
        parts.append(BODY_NAMES.get(body, body))
    brand = profile_update.get("brand")
    if brand:
        parts.append(brand.capitalize())
    model = profile_update.get("model")
    if model:
        parts.append(model.capitalize())
    return " ".join(parts) or "veículo"


# --- greeting ---

def build_welcome() -> str:
    return (
        _hello()
        + "A qualquer momento, digite \"sair\" para encerrar.\n\n"
        + "Para começar, qual é o seu nome?"
    )


def build_greeting_with_intent(name: str, update: dict) -> str:
    text = _hello(name)
    if update.get("body_type") or update.get("brand") or update.get("model"):
        text += f"Vi que você está interessado em um {describe_interest(update)}. "
    if update.get("budget"):
        text += f"Com orçamento de R$ {format_brl(update['budget'])}. "
    return text + "\n\nMe conta mais um pouco para eu buscar as melhores opções pra você."


def build_greeting_named(name: str) -> str:
    return (
        _hello(name)
        + "Me conta, o que você está procurando?\n\n"
        + "Pode ser:\n"
        + "- Um tipo de carro (SUV, sedan, hatch...)\n"
        + "- Para que vai usar (família, trabalho, aplicativo...)\n"
        + "- Ou um modelo específico"
    )


def build_greeting_intent_only(update: dict) -> str:
    return (
        _hello()
        + f"Vi que você busca um {describe_interest(update)}. Ótima escolha!\n\n"
        + "Qual é o seu nome?"
    )


def build_greeting_for_vehicle(vehicle: RecommendedVehicle, name: Optional[str] = None) -> str:
    text = (
        _hello(name)
        + f"Vi que você está interessado no {vehicle.display_name}. Excelente escolha!\n\n"
        + f"Preço: R$ {format_brl(vehicle.price)}\n"
        + f"Quilometragem: {_km(vehicle.mileage)}\n\n"
        + "Como posso te ajudar?\n"
        + "- Saber mais sobre este veículo (digite 1)\n"
        + "- Simular financiamento\n"
        + "- Agendar uma visita\n"
        + "- Falar com um vendedor"
    )
    if not name:
        text += "\n\nE qual é o seu nome, por favor?"
    return text


# --- discovery ---

def build_name_correction(name: str, profile: CustomerProfile) -> str:
    text = f"Desculpa pelo erro, {name}! "
    if not profile.budget:
        return text + "Qual é o seu orçamento para o carro?"
    if not profile.body_type and not profile.usage:
        return text + "Que tipo de carro você procura? SUV, sedan, hatch?"
    return text + "Posso buscar as opções com o que você já me contou?"


def build_discovery_question(profile: CustomerProfile, offer_handoff: bool = False) -> str:
    name = first_name(profile.customer_name)
    lead = f"{name}, " if name else ""
    if not profile.budget and not profile.body_type and not profile.usage:
        text = (
            f"{lead}me ajuda a entender melhor: qual é o seu orçamento "
            "e para que você vai usar o carro? (cidade, viagem, trabalho, aplicativo...)"
        )
    elif not profile.budget:
        text = f"{lead}até quanto você pretende investir no carro?"
    else:
        text = (
            f"{lead}que tipo de carro você prefere? SUV, sedan, hatch, picape? "
            "Ou me conta para que vai usar."
        )
    if offer_handoff:
        text += "\n\nSe preferir, posso te passar para um consultor. É só pedir."
    return text


# --- recommendation ---

def build_recommendation_list(recommendations: list[VehicleRecommendation]) -> str:
    lines = ["Encontrei algumas opções que combinam com você!", ""]
    for index, rec in enumerate(recommendations, start=1):
        vehicle = rec.vehicle
        lines.append(f"{index}. {vehicle.display_name}")
        lines.append(f"   {_km(vehicle.mileage)} - R$ {format_brl(vehicle.price)}")
        lines.append(f"   {rec.reasoning}")
        lines.append("")
    lines.append("Curtiu algum? Me diz o número (1, 2 ou 3) para ver mais detalhes.")
    lines.append("")
    lines.append("Ou me conta se quer ver mais opções, saber sobre financiamento ou falar com um vendedor.")
    return "\n".join(lines)


def build_no_results() -> str:
    return (
        "Poxa, não encontrei veículos disponíveis com esses critérios no momento.\n\n"
        "Quer que eu:\n"
        "- Busque com critérios mais flexíveis?\n"
        "- Te passe para um vendedor que pode ajudar?"
    )


def build_search_error() -> str:
    return (
        "Desculpe, tive um problema ao consultar o estoque agora. "
        "Pode tentar de novo em instantes, ou, se preferir, falar com um vendedor."
    )


def build_vehicle_details(rec: VehicleRecommendation) -> str:
    vehicle = rec.vehicle
    lines = [
        f"{vehicle.make} {vehicle.model}",
        "",
        f"Ano: {vehicle.year}",
        f"Quilometragem: {_km(vehicle.mileage)}",
        f"Preço: R$ {format_brl(vehicle.price)}",
        f"Tipo: {BODY_NAMES.get(vehicle.body_type.lower(), vehicle.body_type)}",
    ]
    if vehicle.features:
        lines.append("")
        lines.append("Itens:")
        lines.extend(f"- {feature}" for feature in vehicle.features[:6])
    if rec.highlights:
        lines.append("")
        lines.append("Por que esse carro:")
        lines.extend(f"- {h}" for h in rec.highlights)
    if rec.concerns:
        lines.append("")
        lines.append("Atenção:")
        lines.extend(f"- {c}" for c in rec.concerns)
    lines.append("")
    lines.append("Gostou? Você pode agendar uma visita, simular o financiamento ou falar com um vendedor.")
    return "\n".join(lines)


def build_invalid_selection(count: int) -> str:
    options = ", ".join(str(i) for i in range(1, count + 1))
    return f"Não encontrei essa opção. Me diz um número entre {options}."


def build_recommendation_help() -> str:
    return (
        "Posso te ajudar com algo mais?\n\n"
        "- Digite um número (1, 2 ou 3) para ver detalhes\n"
        "- \"Mais opções\" para ver outros carros\n"
        "- \"Financiamento\" para simular parcelas\n"
        "- \"Vendedor\" para falar com alguém"
    )


def build_question_unavailable() -> str:
    return (
        "Desculpe, não consegui responder isso agora. "
        + build_recommendation_help()
    )


def build_question_needs_consultant() -> str:
    return (
        "Essa informação eu prefiro confirmar com um consultor para não te passar nada errado. "
        "Quer que eu te passe para um vendedor?"
    )


def build_question_out_of_scope() -> str:
    return (
        "Esse assunto foge do que eu consigo ajudar por aqui. "
        "Posso falar sobre os carros, financiamento, troca ou agendar uma visita."
    )


# --- financing ---

def build_financing_no_price() -> str:
    return (
        "Para simular o financiamento, preciso saber qual carro te interessa "
        "ou quanto você pretende investir. Me conta o seu orçamento?"
    )


def build_financing_ask(price: float) -> str:
    return (
        f"Vamos simular o financiamento de um carro de R$ {format_brl(price)}.\n\n"
        "Quanto você pode dar de entrada e em quantas parcelas prefere? "
        "Ex.: \"20 mil de entrada em 48x\"."
    )


def build_down_payment_too_high(price: float) -> str:
    return (
        f"Com essa entrada você já cobre o valor do carro (R$ {format_brl(price)}). "
        "Nesse caso não precisa financiar! Quer que eu te passe para um consultor fechar a compra à vista?"
    )


def build_financing_summary(
    simulation: FinancingSimulation,
    alternatives: list[FinancingSimulation],
    vehicle_name: Optional[str] = None,
) -> str:
    title = f"Simulação para o {vehicle_name}" if vehicle_name else "Simulação de financiamento"
    lines = [
        title,
        "",
        f"Valor do veículo: R$ {format_brl(simulation.vehicle_price)}",
        f"Entrada: R$ {format_brl(simulation.down_payment)}",
        f"Valor financiado: R$ {format_brl(simulation.financed_amount)}",
        f"{simulation.months}x de R$ {format_brl(simulation.monthly_payment)}",
        f"Taxa: {simulation.monthly_rate * 100:.2f}% a.m. ({simulation.annual_rate_pct:.2f}% a.a.)",
        f"Total: R$ {format_brl(simulation.total_amount)}",
    ]
    if alternatives:
        lines.append("")
        lines.append("Outras opções:")
        lines.extend(
            f"- {alt.months}x de R$ {format_brl(alt.monthly_payment)}" for alt in alternatives
        )
    lines.append("")
    lines.append("Valores aproximados, sujeitos à análise de crédito.")
    lines.append("Quer falar com um consultor para aprovar, ou voltar para ver os carros?")
    return "\n".join(lines)


# --- trade-in ---

def build_trade_in_question(trade_in: TradeInInfo) -> str:
    missing: list[str] = []
    if not trade_in.brand and not trade_in.model:
        missing.append("marca e modelo")
    if not trade_in.year:
        missing.append("ano")
    if not trade_in.mileage:
        missing.append("quilometragem aproximada")
    return (
        "Legal, podemos considerar o seu carro na troca!\n\n"
        f"Me conta: {', '.join(missing)}?"
    )


def build_trade_in_estimate(trade_in: TradeInInfo, estimate: TradeInEstimate) -> str:
    car = " ".join(
        part for part in (
            (trade_in.brand or "").capitalize(),
            (trade_in.model or "").capitalize(),
            str(trade_in.year or ""),
        ) if part
    )
    return (
        f"Avaliação estimada do seu {car}:\n\n"
        f"Entre R$ {format_brl(estimate.min_value)} e R$ {format_brl(estimate.max_value)}\n"
        f"Confiança da estimativa: {CONFIDENCE_NAMES[estimate.confidence]}\n\n"
        "O valor final depende de uma avaliação presencial. "
        "Quer agendar a avaliação com um consultor, ou voltar para ver os carros?"
    )


def build_trade_in_invalid() -> str:
    return "Hmm, o ano do carro não parece certo. Pode confirmar o ano e a quilometragem?"


def build_trade_in_followup() -> str:
    return (
        "Já tenho a estimativa do seu carro. Quer agendar uma avaliação presencial "
        "com um consultor, simular o financiamento ou voltar para ver os carros?"
    )


# --- negotiation ---

def build_negotiation_summary(
    profile: CustomerProfile,
    recommendations: list[VehicleRecommendation],
    visit_requested: bool = False,
) -> str:
    name = first_name(profile.customer_name)
    lines = [f"Perfeito{', ' + name if name else ''}! Aqui está o resumo do seu atendimento:", ""]
    selected = _selected(profile, recommendations)
    if selected is not None:
        lines.append(f"Carro de interesse: {selected.display_name} (R$ {format_brl(selected.price)})")
    if profile.budget:
        lines.append(f"Orçamento: R$ {format_brl(profile.budget)}")
    if profile.body_type:
        lines.append(f"Tipo: {BODY_NAMES.get(profile.body_type.value, profile.body_type.value)}")
    if profile.usage:
        lines.append(f"Uso: {USAGE_NAMES.get(profile.usage.value, profile.usage.value)}")
    if profile.wants_financing:
        down = profile.financing.down_payment
        months = profile.financing.months
        detail = ""
        if down is not None and months:
            detail = f" (entrada de R$ {format_brl(down)} em {months}x)"
        lines.append(f"Financiamento: sim{detail}")
    if profile.has_trade_in:
        trade = profile.trade_in
        value = ""
        if trade.estimated_value:
            value = f", estimado em R$ {format_brl(trade.estimated_value)}"
        car = " ".join(p for p in ((trade.brand or "").capitalize(), str(trade.year or "")) if p)
        lines.append(f"Carro na troca: {car or 'sim'}{value}")
    lines.append("")
    if visit_requested:
        lines.append("Vou pedir pro nosso consultor agendar sua visita pelo WhatsApp.")
    lines.append(
        f"Um consultor vai entrar em contato em até {_biz.consultant_response_minutes} minutos "
        "para continuar a negociação."
    )
    return "\n".join(lines)


def _selected(
    profile: CustomerProfile, recommendations: list[VehicleRecommendation]
) -> Optional[RecommendedVehicle]:
    for rec in recommendations:
        if rec.vehicle_id == profile.selected_vehicle_id:
            return rec.vehicle
    return recommendations[0].vehicle if recommendations else None


def build_negotiation_forwarded() -> str:
    return (
        "Já passei suas informações para o consultor, ele vai falar com você em breve. "
        "Enquanto isso, quer voltar para ver os carros ou buscar outro tipo?"
    )


def build_timing_reply() -> str:
    return (
        f"O consultor costuma responder em até {_biz.consultant_response_minutes} minutos, "
        "no horário comercial, pelo WhatsApp."
    )


def build_new_search() -> str:
    return "Claro! Vamos buscar outro tipo de carro. Me conta o que você procura agora?"


# --- terminal ---

def build_handoff_message(name: Optional[str] = None) -> str:
    lead = f"Certo, {first_name(name)}! " if name else "Claro! "
    return (
        f"{lead}Vou te transferir para um consultor.\n\n"
        "Ele vai entrar em contato em breve. Já passei suas informações pra ele!"
    )


def build_handoff_followup() -> str:
    return "Seu atendimento já foi encaminhado para um consultor. Ele vai falar com você em breve."


def build_farewell(name: Optional[str] = None, consultant_pending: bool = False) -> str:
    lead = f"Até mais, {first_name(name)}!" if name else "Até mais!"
    text = f"{lead} Obrigado por conversar com a {_biz.name}."
    if consultant_pending:
        text += " Nosso consultor vai entrar em contato com você."
    return text + " Quando quiser voltar, é só mandar uma mensagem."


def build_apology() -> str:
    return (
        "Desculpe, tive um problema para processar sua mensagem. "
        "Pode tentar novamente? Se preferir, posso te passar para um vendedor."
    )
