"""Notification templates for transactional events."""

from __future__ import annotations

import html
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

BRAND_NAME = "Local City Places"

_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


@dataclass
class RenderedTemplate:
    subject: str
    text_body: str
    html_body: str


def _format_money(amount: Decimal | int | float) -> str:
    return f"${float(amount):,.2f}"


def month_label(month: int, year: int) -> str:
    return f"{_MONTH_NAMES[month - 1]} {year}"


def _greeting(name: str | None) -> str:
    return f"Hi {name.strip()}," if name and name.strip() else "Hi there,"


def _render(
    subject: str,
    *,
    name: str | None,
    paragraphs: Sequence[str],
    action: tuple[str, str] | None = None,
    footnotes: Iterable[str] = (),
) -> RenderedTemplate:
    """Assemble the plain-text and HTML bodies from shared building blocks."""

    footnotes = list(footnotes)
    text_lines = [_greeting(name), ""]
    for paragraph in paragraphs:
        text_lines.extend([paragraph, ""])
    if action:
        label, url = action
        text_lines.extend([f"{label}: {url}", ""])
    for note in footnotes:
        text_lines.append(note)
    if footnotes:
        text_lines.append("")
    text_lines.extend(["Thanks,", f"The {BRAND_NAME} Team"])

    html_parts = [f"<p>{html.escape(_greeting(name))}</p>"]
    html_parts.extend(f"<p>{html.escape(paragraph)}</p>" for paragraph in paragraphs)
    if action:
        label, url = action
        html_parts.append(
            f'<p><a href="{html.escape(url, quote=True)}" '
            f'style="background:#1a7f5a;color:#fff;padding:12px 20px;border-radius:6px;text-decoration:none">'
            f"{html.escape(label)}</a></p>"
        )
    html_parts.extend(f'<p style="color:#666;font-size:13px">{html.escape(note)}</p>' for note in footnotes)
    html_parts.append(f"<p>Thanks,<br/>The {BRAND_NAME} Team</p>")
    html_body = "<html>\n  <body>\n    " + "\n    ".join(html_parts) + "\n  </body>\n</html>"

    return RenderedTemplate(subject=subject, text_body="\n".join(text_lines), html_body=html_body)


def render_magic_link(link_url: str, *, expires_in_minutes: int) -> RenderedTemplate:
    hours = expires_in_minutes // 60
    lifetime = f"{hours // 24} days" if hours >= 48 else f"{hours} hours"
    return _render(
        f"Sign in to {BRAND_NAME}",
        name=None,
        paragraphs=["Click the button below to sign in to your account."],
        action=("Sign in", link_url),
        footnotes=[
            f"This link expires in {lifetime}.",
            "If you didn't request this email, you can safely ignore it.",
        ],
    )


def render_grc_issued(
    *,
    recipient_name: str | None,
    merchant_name: str,
    denomination: int,
    months: int,
    claim_url: str,
) -> RenderedTemplate:
    return _render(
        f"{merchant_name} sent you a ${denomination} Grocery Rebate Certificate",
        name=recipient_name,
        paragraphs=[
            f"{merchant_name} has given you a ${denomination} Grocery Rebate Certificate.",
            f"Spend $100 a month at your grocery store, upload your receipts and earn a $25 "
            f"gift card each month for {months} months.",
        ],
        action=("Claim your certificate", claim_url),
    )


def render_grc_activated(
    *,
    member_name: str | None,
    merchant_name: str,
    denomination: int,
    grocery_store: str,
    start_month: int,
    start_year: int,
    months: int,
    bonus_month: bool,
    dashboard_url: str,
) -> RenderedTemplate:
    paragraphs = [
        f"Your ${denomination} certificate from {merchant_name} is active at {grocery_store}.",
        f"Your first qualifying month is {month_label(start_month, start_year)} "
        f"and you have {months} months to earn rewards.",
    ]
    if bonus_month:
        paragraphs.append("Thanks for your review! We added a bonus month to your certificate.")
    return _render(
        "Your Grocery Rebate Certificate is active",
        name=member_name,
        paragraphs=paragraphs,
        action=("Go to your dashboard", dashboard_url),
    )


def render_receipt_rejected(
    *,
    member_name: str | None,
    reason: str,
    notes: str | None,
    reupload_until: datetime | None,
    upload_url: str,
) -> RenderedTemplate:
    paragraphs = [f"We couldn't approve one of your receipts. Reason: {reason}."]
    if notes:
        paragraphs.append(f"Reviewer notes: {notes}")
    if reupload_until:
        paragraphs.append(
            f"You can upload a corrected receipt until {reupload_until.strftime('%B %d, %Y')}."
        )
    return _render(
        "Action needed: receipt not approved",
        name=member_name,
        paragraphs=paragraphs,
        action=("Upload a receipt", upload_url),
    )


def render_gift_card_sent(
    *,
    member_name: str | None,
    month: int,
    year: int,
    amount: Decimal,
    tracking_number: str | None,
) -> RenderedTemplate:
    paragraphs = [
        f"Your {_format_money(amount)} gift card for {month_label(month, year)} is on its way.",
    ]
    if tracking_number:
        paragraphs.append(f"Tracking number: {tracking_number}")
    return _render(
        f"Your {month_label(month, year)} reward has been sent",
        name=member_name,
        paragraphs=paragraphs,
    )


def render_grc_completed(
    *,
    member_name: str | None,
    merchant_name: str,
    months: int,
    total_earned: Decimal,
    grcs_url: str,
) -> RenderedTemplate:
    return _render(
        "You completed your Grocery Rebate Certificate",
        name=member_name,
        paragraphs=[
            f"Congratulations! You qualified for all {months} months of your certificate "
            f"from {merchant_name} and earned {_format_money(total_earned)} in rewards.",
            "If you have another certificate waiting, pick a grocery store to activate it.",
        ],
        action=("View your certificates", grcs_url),
    )


def render_merchant_welcome(*, business_name: str, sign_in_url: str, trial_quantity: int) -> RenderedTemplate:
    return _render(
        f"Welcome to {BRAND_NAME}, {business_name}",
        name=business_name,
        paragraphs=[
            "Your merchant account is ready.",
            f"We've added {trial_quantity} trial certificates to your inventory so you can "
            "start rewarding customers right away.",
        ],
        action=("Sign in to your dashboard", sign_in_url),
    )


def render_order_received(
    *,
    business_name: str,
    lines: Sequence[tuple[int, int, Decimal]],
    payment_method: str,
    admin_url: str,
) -> RenderedTemplate:
    total = sum((line_total for _, _, line_total in lines), Decimal("0"))
    paragraphs = [f"{business_name} placed a certificate order paid by {payment_method.replace('_', ' ')}."]
    paragraphs.extend(
        f"{quantity} x ${denomination} certificates: {_format_money(line_total)}"
        for denomination, quantity, line_total in lines
    )
    paragraphs.append(f"Order total: {_format_money(total)}")
    return _render(
        f"New certificate order from {business_name}",
        name="team",
        paragraphs=paragraphs,
        action=("Review orders", admin_url),
    )


def render_order_decision(
    *,
    business_name: str,
    denomination: int,
    quantity: int,
    approved: bool,
    reason: str | None,
) -> RenderedTemplate:
    if approved:
        subject = "Your certificate order is confirmed"
        paragraphs = [
            f"We confirmed your payment for {quantity} x ${denomination} certificates.",
            "They are now available to issue from your dashboard.",
        ]
    else:
        subject = "Your certificate order could not be confirmed"
        paragraphs = [f"We could not confirm payment for {quantity} x ${denomination} certificates."]
        if reason:
            paragraphs.append(f"Reason: {reason}")
    return _render(subject, name=business_name, paragraphs=paragraphs)
