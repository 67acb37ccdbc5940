"""
Customer and admin email notifications for the order lifecycle.

Templates are rendered here and delivered through the Resend client. Callers
treat every send as best-effort: a failed email never undoes an order update.
"""
from decimal import Decimal
from html import escape
from typing import List, Optional

from . import config, models
from .clients import resend_client


def format_brl(amount) -> str:
    """Format an amount as Brazilian currency, e.g. "R$ 49,90"."""
    return "R$ " + f"{Decimal(str(amount)):.2f}".replace(".", ",")


def short_id(order_id: str) -> str:
    return order_id[:8]


def _items_rows(items: List[models.OrderItem], tag_physical: bool = False) -> str:
    rows = []
    for item in items:
        if item.is_digital:
            tag = ' <span style="color: #3b82f6; font-size: 12px;">(Digital)</span>'
        elif tag_physical:
            tag = ' <span style="color: #10b981; font-size: 12px;">(Físico)</span>'
        else:
            tag = ""
        rows.append(
            "<tr>"
            f'<td style="padding: 12px; border-bottom: 1px solid #eee;">{escape(item.product_name)}{tag}</td>'
            f'<td style="padding: 12px; border-bottom: 1px solid #eee; text-align: center;">{item.quantity}</td>'
            f'<td style="padding: 12px; border-bottom: 1px solid #eee; text-align: right;">{format_brl(item.total_price)}</td>'
            "</tr>"
        )
    return "".join(rows)


def render_order_confirmation(order: models.Order, items: List[models.OrderItem]) -> str:
    has_digital = any(item.is_digital for item in items)
    digital_note = (
        '<div style="background: #eff6ff; padding: 15px; border-left: 4px solid #3b82f6; margin: 20px 0;">'
        '<p style="margin: 0; color: #1e40af;"><strong>📥 Produtos Digitais:</strong> '
        "Os links para download serão enviados em um email separado em breve.</p></div>"
        if has_digital else ""
    )
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: linear-gradient(135deg, #FF6B9D 0%, #C084FC 100%); padding: 30px; text-align: center;">
        <h1 style="color: white; margin: 0;">✨ Pedido Confirmado!</h1>
      </div>
      <div style="padding: 30px; background: #fff;">
        <p style="font-size: 18px;">Olá, <strong>{escape(order.customer_name)}</strong>!</p>
        <p>Seu pedido <strong>#{short_id(order.id)}</strong> foi confirmado com sucesso.</p>
        <table style="width: 100%; border-collapse: collapse;">
          <thead><tr style="background: #f3f4f6;">
            <th style="padding: 12px; text-align: left;">Produto</th>
            <th style="padding: 12px; text-align: center;">Qtd</th>
            <th style="padding: 12px; text-align: right;">Total</th>
          </tr></thead>
          <tbody>{_items_rows(items)}</tbody>
          <tfoot><tr>
            <td colspan="2" style="padding: 12px; text-align: right;"><strong>Total:</strong></td>
            <td style="padding: 12px; text-align: right;"><strong>{format_brl(order.total_amount)}</strong></td>
          </tr></tfoot>
        </table>
        {digital_note}
        <p style="color: #6b7280; font-size: 14px;">Se tiver qualquer dúvida, entre em contato conosco pelo WhatsApp.</p>
        <p style="margin-top: 30px;">Obrigado pela sua compra! 🎉</p>
      </div>
    </div>
    """


def render_admin_notification(order: models.Order, items: List[models.OrderItem]) -> str:
    has_digital = any(item.is_digital for item in items)
    has_physical = any(not item.is_digital for item in items)
    phone = f"<p><strong>WhatsApp:</strong> {escape(order.customer_phone)}</p>" if order.customer_phone else ""
    notes = []
    if has_digital:
        notes.append("<p><strong>🎨 Produtos Digitais:</strong> Este pedido contém produtos digitais.</p>")
    if has_physical:
        notes.append("<p><strong>📦 Produtos Físicos:</strong> Este pedido contém produtos físicos.</p>")
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: linear-gradient(135deg, #10b981 0%, #059669 100%); padding: 25px; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">🛒 Novo Pedido Recebido!</h1>
      </div>
      <div style="padding: 25px; background: #fff;">
        <p><strong>💰 Valor Total: {format_brl(order.total_amount)}</strong></p>
        <h3>📦 Detalhes do Pedido #{short_id(order.id)}</h3>
        <table style="width: 100%; border-collapse: collapse;">
          <tbody>{_items_rows(items, tag_physical=True)}</tbody>
        </table>
        <h3>👤 Dados do Cliente</h3>
        <p><strong>Nome:</strong> {escape(order.customer_name)}</p>
        <p><strong>Email:</strong> {escape(order.customer_email)}</p>
        {phone}
        {"".join(notes)}
        <p style="text-align: center;"><a href="{config.ADMIN_PANEL_URL}">Ver Pedido no Painel Admin</a></p>
      </div>
    </div>
    """


def render_shipping_notification(customer_name: str, tracking_code: str, carrier: str, tracking_url: str) -> str:
    return f"""
    <div style="font-family: 'Segoe UI', Tahoma, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: linear-gradient(135deg, #ec4899 0%, #f472b6 100%); padding: 40px 30px; text-align: center;">
        <h1 style="color: #ffffff; margin: 0;">🎉 Boa notícia!</h1>
        <p style="color: #fce7f3;">Seu pedido está a caminho!</p>
      </div>
      <div style="padding: 40px 30px;">
        <p>Olá <strong>{escape(customer_name or "")}</strong>,</p>
        <p>Seu pedido foi despachado e está a caminho do endereço de entrega!</p>
        <p>Transportadora: <strong>{escape(carrier)}</strong></p>
        <p>Código de Rastreio: <strong style="font-family: monospace;">{escape(tracking_code)}</strong></p>
        <p><a href="{escape(tracking_url)}">Rastrear Pedido →</a></p>
        <ul style="color: #6b7280; font-size: 14px;">
          <li>A atualização do rastreio pode levar até 24h após o envio</li>
          <li>Mantenha alguém disponível no endereço para receber</li>
        </ul>
      </div>
    </div>
    """


def render_delivery_notification(order: models.Order, tracking_code: str) -> str:
    return f"""
    <div style="font-family: 'Segoe UI', Tahoma, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: linear-gradient(135deg, #10b981 0%, #059669 100%); padding: 40px 30px; text-align: center;">
        <h1 style="color: #ffffff; margin: 0;">✅ Pedido Entregue!</h1>
        <p style="color: #d1fae5;">Seu pedido chegou ao destino!</p>
      </div>
      <div style="padding: 40px 30px;">
        <p>Olá <strong>{escape(order.customer_name)}</strong>,</p>
        <p>Seu pedido #{short_id(order.id)} foi entregue com sucesso! 🎉</p>
        <p>📦 Código de Rastreio: <span style="font-family: monospace;">{escape(tracking_code)}</span></p>
        <p>⭐ <strong>Gostou dos produtos?</strong> Deixe uma avaliação! Sua opinião é muito importante para nós.</p>
      </div>
    </div>
    """


async def send_order_confirmation_email(order: models.Order, items: List[models.OrderItem]) -> None:
    await resend_client.send_email(
        [order.customer_email],
        f"✨ Pedido #{short_id(order.id)} Confirmado!",
        render_order_confirmation(order, items),
    )


async def send_admin_notification_email(order: models.Order, items: List[models.OrderItem], admin_email: str) -> None:
    await resend_client.send_email(
        [admin_email],
        f"🛒 Novo Pedido #{short_id(order.id)} - {format_brl(order.total_amount)}",
        render_admin_notification(order, items),
    )


async def send_shipping_notification(customer_name: str, customer_email: str, order_id: str, tracking_code: str,
                                     carrier: Optional[str] = None, tracking_url: Optional[str] = None) -> Optional[dict]:
    """
    Tell the customer the order left for delivery.

    Returns:
        Email provider response (None when email is not configured)
    """
    tracking_url = tracking_url or f"{config.SITE_URL}/rastrear?codigo={tracking_code}"
    return await resend_client.send_email(
        [customer_email],
        f"🚚 Seu pedido foi enviado! - Pedido #{short_id(order_id or '')}",
        render_shipping_notification(customer_name, tracking_code, carrier or "Correios", tracking_url),
    )


async def send_delivery_notification(order: models.Order, tracking_code: str) -> None:
    await resend_client.send_email(
        [order.customer_email],
        f"✅ Pedido Entregue! - Pedido #{short_id(order.id)}",
        render_delivery_notification(order, tracking_code),
    )
