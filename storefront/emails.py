"""Confirmation email rendering.

Everything shown comes from the persisted record; nothing is re-priced.
"""

from datetime import datetime
from decimal import Decimal
from html import escape

from .domain import Event, Order, Registration
from .mailer import RenderedEmail

SHOP_NAME = "Cookie Corner Cafe"
WEBSITE_URL = "https://cookiecornercafe.ca"


def format_when(value: str | datetime | None, default: str = "TBD") -> str:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    hour = value.hour % 12 or 12
    return f"{value:%a, %b} {value.day}, {value:%Y}, {hour}:{value:%M %p}"


def format_money(amount: Decimal) -> str:
    return f"${amount:.2f}"


def render_order_confirmation(order: Order) -> RenderedEmail:
    when = format_when(order.pickup_delivery_time, default=order.pickup_delivery_time)
    when_label = "Delivery time" if order.is_delivery else "Pickup time"
    total = format_money(order.price_paid)

    if order.product_orders:
        rows = []
        for item in order.product_orders:
            size = f" ({escape(item.size)})" if item.size else ""
            custom = ""
            if item.customizations:
                custom = (
                    '<div style="color:#555;font-size:12px;margin-top:2px;">'
                    f"Customizations: {escape(', '.join(item.customizations))}</div>"
                )
            rows.append(
                f'<li style="margin:0 0 10px 0;"><div><strong>{item.quantity}×</strong> '
                f"{escape(item.product_name)}{size}</div>{custom}</li>"
            )
        items_html = f"<ul>{''.join(rows)}</ul>"
    else:
        items_html = "<p>(No item details available)</p>"

    address_html = ""
    if order.is_delivery:
        address_html = f"<p><strong>Delivery address:</strong> {escape(order.delivery_address or '')}</p>"
    notes_html = f"<p><strong>Notes:</strong> {escape(order.notes)}</p>" if order.notes else ""

    html = f"""
<div style="font-family:ui-sans-serif,system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial;line-height:1.5;color:#111;">
  <h2 style="margin:0 0 8px 0;">Thanks, {escape(order.customer_name)}!</h2>
  <p style="margin:0 0 16px 0;">Your payment was successful and your order is confirmed.</p>
  <div style="padding:12px 14px;border:1px solid #e5e7eb;border-radius:10px;margin:0 0 16px 0;">
    <p style="margin:0 0 6px 0;"><strong>Order ID:</strong> {escape(str(order.id))}</p>
    <p style="margin:0 0 6px 0;"><strong>{when_label}:</strong> {escape(when)}</p>
    {address_html}
    <p style="margin:0;"><strong>Total paid:</strong> {escape(total)}</p>
  </div>
  <h3 style="margin:0 0 8px 0;">Items</h3>
  {items_html}
  {notes_html}
  <p style="margin:16px 0 0 0;color:#555;font-size:12px;">If you have any questions, reply to this email.</p>
</div>
""".strip()

    lines = [
        f"Thanks, {order.customer_name}!",
        "",
        "Your payment was successful and your order is confirmed.",
        "",
        f"Order ID: {order.id}",
        f"{when_label}: {when}",
    ]
    if order.is_delivery and order.delivery_address:
        lines.append(f"Delivery address: {order.delivery_address}")
    lines += [f"Total paid: {total}", "", "Items:"]
    if order.product_orders:
        for item in order.product_orders:
            size = f" ({item.size})" if item.size else ""
            custom = f" [{', '.join(item.customizations)}]" if item.customizations else ""
            lines.append(f"- {item.quantity}× {item.product_name}{size}{custom}")
    else:
        lines.append("- (No item details available)")
    if order.notes:
        lines += ["", f"Notes: {order.notes}"]

    return RenderedEmail(
        subject=f"{SHOP_NAME} — Order confirmed",
        html=html,
        text="\n".join(lines),
    )


def render_registration_confirmation(registration: Registration, event: Event | None) -> RenderedEmail:
    title = event.title if event else "Event"
    when = format_when(event.starts_at if event else None)
    location = (event.location if event else None) or "TBD"
    total = format_money(registration.price_paid)

    html = f"""
<div style="background:#f8f9fb;padding:24px;font-family:system-ui,-apple-system,BlinkMacSystemFont,'Segoe UI',sans-serif;color:#111;">
  <div style="max-width:640px;margin:0 auto;background:#ffffff;border-radius:12px;padding:24px;">
    <h1 style="margin:0 0 4px;font-size:22px;">Ticket confirmed</h1>
    <div style="color:#6b7280;font-size:14px;">Thanks, {escape(registration.customer_name)}!</div>
    <div style="border:1px solid #e5e7eb;border-radius:10px;padding:16px;margin-top:12px;">
      <div style="font-weight:600;font-size:16px;margin-bottom:8px;">{escape(title)}</div>
      <div><strong>When:</strong> {escape(when)}</div>
      <div><strong>Location:</strong> {escape(location)}</div>
      <div><strong>Tickets:</strong> {registration.quantity}</div>
      <div><strong>Total paid:</strong> {escape(total)}</div>
      <div style="margin-top:8px;color:#6b7280;font-size:13px;">Registration ID: {escape(str(registration.id))}</div>
    </div>
    <p style="margin:16px 0 0;color:#374151;font-size:14px;">
      We've received your payment and reserved your spot. If you need to update your details,
      just reply to this email and include your registration ID.
    </p>
    <p style="margin:12px 0 0;color:#6b7280;font-size:13px;">See you soon!<br/>{SHOP_NAME}</p>
    <p style="margin:16px 0 0;"><a href="{WEBSITE_URL}" style="color:#b91c1c;text-decoration:none;">Visit our site</a></p>
  </div>
</div>
""".strip()

    lines = [
        SHOP_NAME,
        "Ticket confirmed",
        "",
        f"Thanks, {registration.customer_name}!",
        "",
        f"Event: {title}",
        f"When: {when}",
        f"Location: {location}",
        f"Tickets: {registration.quantity}",
        f"Total paid: {total}",
        f"Registration ID: {registration.id}",
        "",
        "We've received your payment and reserved your spot.",
        "Need to update? Reply with your registration ID.",
        "",
        f"Website: {WEBSITE_URL}",
    ]

    return RenderedEmail(
        subject=f"{SHOP_NAME} — {title} ticket confirmed",
        html=html,
        text="\n".join(lines),
    )
