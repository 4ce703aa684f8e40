"""
Email Service - Send liquidation notifications via Amazon SES

Uses boto3 SDK (HTTPS API calls, no SMTP needed).
boto3 is blocking, so sends run in a worker thread.
"""

import asyncio
import html
import logging

import boto3
from botocore.exceptions import ClientError

from cryptodash.config import settings
from cryptodash.trading_engine.liquidation_executor import format_amount
from cryptodash.trading_engine.notifications import LiquidationNotice, Notifier

logger = logging.getLogger(__name__)


def _get_ses_client():
    """Get SES client using the default AWS credential chain."""
    return boto3.client("ses", region_name=settings.ses_region)


def _money(value: float) -> str:
    return f"${value:,.2f}"


def build_liquidation_subject(notice: LiquidationNotice) -> str:
    return f"Stop Loss Triggered: {notice.symbol} sold at ${format_amount(notice.sell_price)}"


def _profit_loss_text(notice: LiquidationNotice) -> str:
    pl = notice.profit_loss
    return f"Profit: {_money(pl)}" if pl >= 0 else f"Loss: {_money(abs(pl))}"


def build_liquidation_html(notice: LiquidationNotice) -> str:
    name = html.escape(notice.username or notice.email or "")
    symbol = html.escape(notice.symbol)
    pl_color = "#28a745" if notice.profit_loss >= 0 else "#dc3545"
    rows = [
        ("Coin", symbol),
        ("Quantity Sold", format_amount(notice.quantity)),
        ("Original Price", _money(notice.entry_price)),
        ("Sell Price", _money(notice.sell_price)),
        ("Total Value", _money(notice.total_value)),
        ("Trigger Type", notice.trigger_type.label),
    ]
    table_rows = "".join(
        '<tr>'
        f'<td style="padding: 8px 0; font-weight: bold; color: #555;">{label}:</td>'
        f'<td style="padding: 8px 0; color: #333;">{value}</td>'
        '</tr>'
        for label, value in rows
    )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px;'
        ' margin: 0 auto; padding: 20px;">'
        '<h1 style="color: #ee5a24; text-align: center;">Stop Loss Alert</h1>'
        f'<p>Hello {name},</p>'
        f'<p>Your {notice.trigger_type.label} has been triggered and your'
        f' {symbol} has been automatically sold:</p>'
        '<table style="width: 100%; border-collapse: collapse;">'
        f'{table_rows}'
        '<tr><td style="padding: 8px 0; font-weight: bold; color: #555;">P&amp;L:</td>'
        f'<td style="padding: 8px 0; color: {pl_color}; font-weight: bold;">{_profit_loss_text(notice)}</td></tr>'
        '</table>'
        '<p style="color: #666; font-size: 14px;">'
        f'Transaction ID: {notice.sell_order_id}<br>'
        f'Date: {notice.executed_at.strftime("%Y-%m-%d %H:%M:%S")} UTC</p>'
        '</div>'
    )


def build_liquidation_text(notice: LiquidationNotice) -> str:
    name = notice.username or notice.email
    return (
        f"Hello {name},\n\n"
        f"Your {notice.trigger_type.label} has been triggered and your {notice.symbol} "
        f"has been automatically sold.\n\n"
        f"Quantity Sold: {format_amount(notice.quantity)}\n"
        f"Original Price: {_money(notice.entry_price)}\n"
        f"Sell Price: {_money(notice.sell_price)}\n"
        f"Total Value: {_money(notice.total_value)}\n"
        f"{_profit_loss_text(notice)}\n"
        f"Transaction ID: {notice.sell_order_id}\n"
    )


def send_liquidation_email(notice: LiquidationNotice) -> bool:
    """Send a liquidation notice. Returns False if SES is disabled or there is no address."""
    if not settings.ses_enabled:
        logger.warning("SES disabled, skipping liquidation email for user %s", notice.user_id)
        return False
    if not notice.email:
        logger.warning("No email address for user %s, skipping liquidation email", notice.user_id)
        return False

    try:
        _get_ses_client().send_email(
            Source=settings.ses_sender,
            Destination={"ToAddresses": [notice.email]},
            Message={
                "Subject": {"Data": build_liquidation_subject(notice), "Charset": "UTF-8"},
                "Body": {
                    "Html": {"Data": build_liquidation_html(notice), "Charset": "UTF-8"},
                    "Text": {"Data": build_liquidation_text(notice), "Charset": "UTF-8"},
                },
            },
        )
    except ClientError as e:
        logger.error("SES send failed for %s: %s", notice.email, e.response["Error"]["Message"])
        raise

    logger.info("Liquidation email sent to %s (sell order %s)", notice.email, notice.sell_order_id)
    return True


class EmailNotifier(Notifier):
    """Notifier backed by SES e-mail"""

    async def notify_liquidation(self, notice: LiquidationNotice) -> bool:
        return await asyncio.to_thread(send_liquidation_email, notice)
