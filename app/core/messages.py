"""MarkdownV2 message texts sent to the operator chat."""

from typing import Optional

from app.mercadolibre.client import Item, Order, Question, Shipment
from app.telegram.messenger import escape_markdown as esc

SALE_DETAIL_URL = "https://www.mercadolibre.com.ar/ventas/{order_id}/detalle"

BOT_NAME = "MeLi\\-BOT"


def _link(label: str, url: str) -> str:
    url = url.replace("\\", "\\\\").replace(")", "\\)")
    return f"[{esc(label)}]({url})"


def _money(currency_id: Optional[str], amount: Optional[float]) -> str:
    return f"{esc(currency_id or '')} {esc(amount if amount is not None else '-')}"


def menu_text() -> str:
    return (
        "*\\|👋\\|* Estos son los comandos disponibles:\n\n"
        "*/productinfo* \\- Muestra información de tus productos\\.\n"
        "*/checksales* \\- Revisa las últimas ventas concretadas\\.\n"
        "*/checkquestions* \\- Muestra las preguntas pendientes\\.\n"
        "*/responder \\(ID\\)* \\- Responde una pregunta específica por su ID\\.\n"
        "*/setstock \\(ID\\) \\(Cantidad\\)* \\- Actualiza el stock de un producto\\.\n"
        "*/checkshipment \\(ID\\)* \\- Consulta el estado de un envío\\.\n"
        f"*/status* \\- Verifica el estado de {BOT_NAME}\\."
    )


def status_text(account_linked: bool) -> str:
    account = "vinculada" if account_linked else "sin vincular"
    return (
        f"\\|✅\\| {BOT_NAME} está activo y funcionando correctamente\\.\n"
        f"Cuenta de Mercado Libre: *{account}*\\."
    )


def auth_required_text(auth_page_url: str) -> str:
    return (
        "\\|⚠️\\| *Error de autenticación*\\.\n"
        "Necesitás vincular tu cuenta de Mercado Libre nuevamente\\. "
        f"{_link('Vincular cuenta', auth_page_url)}"
    )


def account_linked_text() -> str:
    return f"\\|✅\\| ¡{BOT_NAME} vinculado correctamente a Mercado Libre\\!"


def not_recognized_text() -> str:
    return "\\|🤔\\| Comando no reconocido\\. Enviá /menu para ver la lista de comandos\\."


def unknown_button_text() -> str:
    return "\\|🤔\\| Acción no reconocida\\."


def usage_text(usage: str) -> str:
    return f"\\|⚠️\\| Usá el formato: `{esc(usage)}`"


def generic_error_text() -> str:
    return (
        "\\|❌\\| Hubo un error al procesar tu solicitud\\. "
        "Por favor, revisá los logs del servidor\\."
    )


def answer_prompt_text(question_id: str) -> str:
    return (
        f"\\|✍️\\| Entendido\\. Respondiendo a la pregunta `{esc(question_id)}`\\.\n"
        "Ahora, escribí tu respuesta y enviala\\."
    )


def answer_sent_text() -> str:
    return "\\|✅\\| Tu respuesta ha sido enviada a Mercado Libre\\."


def answer_failed_text(reason: str) -> str:
    return f"\\|❌\\| Error al enviar la respuesta: {esc(reason)}\\."


def products_text(items: list[Item]) -> str:
    if not items:
        return "\\|📦\\| No tenés publicaciones activas en este momento\\."

    lines = [f"*\\|📦\\|* Información de tus {len(items)} productos activos:\n"]
    for index, item in enumerate(items, start=1):
        lines.append(f"*{index}\\.* *{esc(item.title)}*")
        lines.append(f"   *ID:* `{esc(item.id)}`")
        lines.append(f"   *Precio:* {_money(item.currency_id, item.price)}")
        lines.append(
            f"   *Stock:* {esc(item.available_quantity)} \\| "
            f"*Ventas:* {esc(item.sold_quantity)}"
        )
        if item.permalink:
            lines.append(f"   {_link('Ver producto', item.permalink)}")
        lines.append("")
    return "\n".join(lines).rstrip()


def sales_text(orders: list[Order]) -> str:
    if not orders:
        return "\\|✅\\| No tenés ventas recientes\\."

    lines = [f"*\\|🛒\\|* Últimas {len(orders)} ventas:\n"]
    for order in orders:
        lines.append(f"*ID:* `{esc(order.id)}`")
        lines.append(f"   *Total:* {_money(order.currency_id, order.total_amount)}")
        lines.append(f"   *Comprador:* {esc(order.buyer_nickname or '-')}")
        if order.date_created:
            lines.append(
                f"   *Fecha:* {esc(order.date_created.strftime('%d/%m/%Y %H:%M'))}"
            )
        if order.shipment_id:
            lines.append(f"   *Envío:* `/checkshipment {esc(order.shipment_id)}`")
        lines.append("")
    return "\n".join(lines).rstrip()


def questions_text(questions: list[Question]) -> str:
    if not questions:
        return "\\|✅\\| No tenés preguntas pendientes para responder\\."

    lines = ["*\\|💬\\|* Preguntas sin responder:\n"]
    for question in questions:
        lines.append(f"*ID de pregunta:* `{esc(question.id)}`")
        lines.append(f"*En el producto:* `{esc(question.item_id)}`")
        lines.append(f"   \\- _\"{esc(question.text)}\"_")
        lines.append(f"*Para responder:* `/responder {esc(question.id)}`")
        lines.append("")
    return "\n".join(lines).rstrip()


def stock_updated_text(item_id: str, quantity: int) -> str:
    return (
        f"\\|✅\\| Stock del producto `{esc(item_id)}` actualizado a "
        f"*{esc(quantity)}* unidades\\."
    )


def shipment_text(shipment: Shipment) -> str:
    lines = [
        f"*\\|🚚\\|* Envío `{esc(shipment.id)}`",
        f"   *Estado:* {esc(shipment.status)}",
        f"   *Subestado:* {esc(shipment.substatus or '-')}",
    ]
    if shipment.tracking_number:
        carrier = f" \\({esc(shipment.tracking_method)}\\)" if shipment.tracking_method else ""
        lines.append(f"   *Seguimiento:* `{esc(shipment.tracking_number)}`{carrier}")
        if shipment.order_id:
            url = SALE_DETAIL_URL.format(order_id=shipment.order_id)
            lines.append(f"   {_link('Ver venta', url)}")
    return "\n".join(lines)


def question_notification_text(question: Question, item_title: str) -> str:
    return (
        "*\\|❓\\| Nueva pregunta recibida:*\n\n"
        f"*Producto:* {esc(item_title)} \\(`{esc(question.item_id)}`\\)\n"
        f"*Pregunta:* _\"{esc(question.text)}\"_\n\n"
        f"Podés responderla con el botón o usando: `/responder {esc(question.id)}`"
    )


def order_notification_text(order: Order) -> str:
    text = (
        "*\\|🛒\\| ¡Nueva venta recibida\\!*\n\n"
        f"*ID de venta:* `{esc(order.id)}`\n"
        f"*Total:* {_money(order.currency_id, order.total_amount)}\n"
        f"*Comprador:* {esc(order.buyer_nickname or '-')}\n"
        f"*Estado:* {esc(order.status)}"
    )
    if order.shipment_id:
        text += f"\n\nConsultá el envío con: `/checkshipment {esc(order.shipment_id)}`"
    return text


def generic_notification_text(topic: str, resource: str) -> str:
    return (
        "*\\|🔔\\| Nueva notificación de Mercado Libre*\n\n"
        f"*Tópico:* {esc(topic)}\n"
        f"*Recurso:* `{esc(resource)}`"
    )
