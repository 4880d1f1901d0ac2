# /carinsight/config/strings.py

# This file contains all customer-facing strings. Tuples hold phrasing
# variations; one is picked with the conversation's seeded random source.

GREETING = (
    "Olá! 👋 Sou o assistente virtual da loja. Me conta: que tipo de carro você procura e qual o seu orçamento?",
    "Oi! 🚗 Posso te ajudar a encontrar o carro ideal. Você já tem um modelo ou uma faixa de preço em mente?",
)

GENERIC_REPROMPT = (
    "Desculpe, não consegui entender direito. Pode me contar de novo o que você procura? 🙂",
    "Hmm, acho que me perdi aqui. Qual tipo de carro e faixa de preço você tem em mente?",
    "Não entendi muito bem. Você pode me dizer o modelo, o tipo de carroceria ou o seu orçamento?",
)

FIELD_REPROMPTS = {
    "budget": "Qual é o valor máximo que você pretende investir? Ex: 60 mil.",
    "people_count": "Quantas pessoas costumam andar no carro?",
    "body_type": "Você prefere hatch, sedã, SUV, minivan ou picape?",
    "ride_hailing_category": "Para qual categoria de aplicativo você quer rodar: UberX, Comfort ou Black?",
    "down_payment": "Quanto você pretende dar de entrada? Ex: 20 mil, ou \"sem entrada\".",
    "trade_in_value": "Quanto vale, mais ou menos, o carro que você quer dar na troca?",
}

HANDOFF_MESSAGE = (
    "Perfeito! 👨‍💼 Vou te transferir para um dos nossos vendedores. Em instantes alguém da equipe entra em contato por aqui.",
    "Combinado! Já avisei nossa equipe de vendas e um atendente vai falar com você em breve. 🤝",
)

HANDOFF_PENDING = "Um vendedor da nossa equipe já foi avisado e vai continuar o atendimento por aqui. 🙂"

CLOSING_MESSAGE = (
    "Obrigado pelo contato! 👋 Quando quiser retomar a busca, é só mandar uma mensagem.",
    "Atendimento encerrado. Foi um prazer ajudar! Volte sempre que precisar. 🚗",
)

RECOMMENDATION_HEADER = (
    "Separei algumas opções que combinam com o que você procura:",
    "Olha só o que encontrei no nosso estoque para você:",
)

RECOMMENDATION_LINE = "{position}. *{brand} {model}* {year} • {mileage} km • R$ {price}{tags}"

RECOMMENDATION_FOOTER = '_Digite "vendedor" para falar com nossa equipe ou "sair" para encerrar._'

NO_MATCH_MESSAGE = (
    "Não encontrei nenhum veículo no estoque com esse perfil agora. 😕 Quer ajustar o orçamento ou o tipo de carro?",
    "No momento não temos opções que atendam a todos esses critérios. Podemos tentar outra faixa de preço?",
)

ELIGIBILITY_TAG_LABELS = {
    "uber_x": "UberX",
    "uber_comfort": "Comfort",
    "uber_black": "Black",
    "family_suitable": "Família",
    "work_suitable": "Trabalho",
}

EXPLANATION_LINE = "   ↳ {summary}"
EXPLANATION_CAVEAT = "   ⚠️ {caveat}"
EXPLANATION_FALLBACK = "Boa opção dentro do que você procura."

FINANCING_HEADER = "💰 *Simulação de financiamento: {vehicle}*"
FINANCING_SUMMARY = "Valor do carro: R$ {price} • Entrada: R$ {entry} • Financiado: R$ {financed}"
FINANCING_RATE = "Taxa estimada: {rate}% a.m."
FINANCING_INSTALLMENT = "• {months}x de R$ {payment}"
FINANCING_DISCLAIMER = "_Valores aproximados, sujeitos à análise de crédito._"
FINANCING_PAID_IN_FULL = "Com essa entrada o {vehicle} fica quitado, sem precisar financiar! 🎉"
FINANCING_NEEDS_VEHICLE = (
    "Posso simular o financiamento assim que você escolher um carro. Me conta o que procura? 🚗",
    "Para simular as parcelas eu preciso primeiro te mostrar algumas opções. Qual o seu orçamento?",
)
