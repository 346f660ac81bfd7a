# shop-backend/inventory/notifications.py
import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives

from .validation import display_name

logger = logging.getLogger(__name__)

LOW_STOCK_SUBJECT = "Alerta de Estoque Baixo"


def build_low_stock_lines(items, default_threshold):
    lines = []
    for item in items:
        lines.append(
            f"- {display_name(item)} (SKU {item.sku}): {item.stock_quantity} em estoque "
            f"(limite {item.get_low_stock_threshold(default_threshold)})"
        )
    return lines


def send_low_stock_notification(items, recipients, default_threshold):
    """
    Hand the low-stock digest to the configured mail backend.
    """
    lines = build_low_stock_lines(items, default_threshold)
    body = "\n".join(
        [f"{len(lines)} item(ns) com estoque baixo:", ""] + lines
    )
    msg = EmailMultiAlternatives(
        subject=f"{LOW_STOCK_SUBJECT} ({len(lines)})",
        body=body,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
        to=list(recipients),
    )
    msg.send(fail_silently=False)
    logger.info("Low stock notification sent to %s", ", ".join(recipients))
    return msg
