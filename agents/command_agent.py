from functools import lru_cache

from pydantic_ai import Agent
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from config import GEMINI_MODEL_NAME, get_env_var
from models.candidates import CommandClassification

SYSTEM_PROMPT = (
    "Você é o assistente financeiro de um pequeno comércio brasileiro. "
    "Analise a mensagem do lojista (texto digitado ou transcrição de voz) e "
    "devolva TODAS as ações detectadas, na ordem em que aparecem.\n\n"
    "AÇÕES:\n"
    "1. TRANSACTION: venda (INCOME) ou despesa (EXPENSE).\n"
    "   - amount: valor efetivamente pago AGORA.\n"
    "   - debt_amount: valor que ficou pendente (fiado). 0 se pago à vista.\n"
    "   - items: [{name, quantity, unit_price, total}] quando houver produtos.\n"
    "   - payment_method: como o cliente pagou, exatamente como foi dito.\n"
    "   - customer_name: obrigatório quando houver fiado.\n"
    "   - is_debt_payment: true quando o cliente está quitando um fiado.\n"
    "2. STOCK: entrada de produto no estoque "
    "(product_name, cost_price, sale_price, stock_quantity).\n"
    "3. SERVICE_ORDER: nova ordem de serviço (customer_name, device, problem).\n"
    "4. NAVIGATE: pedido para abrir uma tela (target_page, ex.: 'products', "
    "'finance', 'services', 'customers', 'reports').\n\n"
    "EXEMPLOS:\n"
    "Entrada: 'Vendi 2 camisas por 50 reais cada no pix'\n"
    "Saída: {'actions': [{'kind': 'TRANSACTION', 'payload': {"
    "'description': 'Venda de camisas', 'amount': 100, 'type': 'INCOME', "
    "'payment_method': 'pix', 'items': [{'name': 'camisa', 'quantity': 2, "
    "'unit_price': 50, 'total': 100}]}}]}\n\n"
    "Entrada: 'O João levou um tênis de 200, pagou 50 e o resto fica fiado'\n"
    "Saída: {'actions': [{'kind': 'TRANSACTION', 'payload': {"
    "'description': 'Venda de tênis', 'amount': 50, 'debt_amount': 150, "
    "'type': 'INCOME', 'customer_name': 'João'}}]}\n\n"
    "Se a mensagem não descrever nenhuma ação, devolva {'actions': []}. "
    "Nunca invente valores que não foram ditos."
)


@lru_cache(maxsize=1)
def get_command_agent() -> Agent:
    """
    Build the classification agent on first use.
    Importing this module never requires GOOGLE_API_KEY.
    """
    provider = GoogleProvider(api_key=get_env_var("GOOGLE_API_KEY"))
    model = GoogleModel(GEMINI_MODEL_NAME, provider=provider)
    return Agent(
        model,
        system_prompt=SYSTEM_PROMPT,
        output_type=CommandClassification,
    )


def build_prompt(text: str, context: str) -> str:
    return f"[contexto: {context}]\n{text.strip()}"
