"""Reminder message templates (plain text, Telegram-ready)."""
import os
import re
from datetime import datetime
from typing import Any, Dict, Optional

from models import Recipient, RecipientRole
from services.reminder_windows import WindowDecision

DEBT_DEFAULT_CURRENCY = os.getenv("DEBT_DEFAULT_CURRENCY", "UZS")
DEFAULT_COUNTRY_CODE = os.getenv("DEFAULT_COUNTRY_CODE", "+998")
SUPPORT_PHONE = (os.getenv("SUPPORT_PHONE") or "").strip()
# Shortest subscriber number (without country code) accepted as already prefixed
MIN_SUBSCRIBER_DIGITS = 9

BIRTHDAY_GREETINGS = {
    6: "🌅 Morning reminder",
    12: "☀️ Midday reminder",
    18: "🌆 Evening reminder",
}


def format_date(value: datetime, tz=None) -> str:
    if tz is not None and value.tzinfo is not None:
        value = value.astimezone(tz)
    return value.strftime("%d %B %Y")


def format_amount(amount: Any) -> str:
    """12500000 -> '12 500 000'; fractional amounts keep two decimals."""
    try:
        number = float(amount)
    except (TypeError, ValueError):
        return str(amount)
    if number.is_integer():
        return f"{int(number):,}".replace(",", " ")
    return f"{number:,.2f}".replace(",", " ")


def format_phone(phone: Optional[str], country_code: Optional[str] = None) -> str:
    """Normalize a local or international number to +<digits>."""
    if not phone:
        return ""
    digits = re.sub(r"\D", "", str(phone))
    if not digits:
        return ""
    code = country_code or DEFAULT_COUNTRY_CODE
    code_digits = re.sub(r"\D", "", code)
    if str(phone).strip().startswith("+"):
        return f"+{digits}"
    if (
        code_digits
        and digits.startswith(code_digits)
        and len(digits) - len(code_digits) >= MIN_SUBSCRIBER_DIGITS
    ):
        return f"+{digits}"
    return f"+{code_digits}{digits}"


def days_left(end_date: datetime, now: datetime) -> int:
    """Calendar days from today to end_date, both read in now's timezone."""
    if end_date.tzinfo is None:
        end_date = end_date.replace(tzinfo=now.tzinfo)
    else:
        end_date = end_date.astimezone(now.tzinfo)
    return (end_date.date() - now.date()).days


def birthday_message(customer: Dict[str, Any], recipient: Recipient, decision: WindowDecision) -> str:
    name = " ".join(p for p in (customer.get("firstName"), customer.get("lastName")) if p) or "your customer"
    greeting = BIRTHDAY_GREETINGS.get(decision.hour)
    lines = ["🎉 Birthday reminder!"]
    if greeting:
        lines.append(greeting)
    lines.append("")
    lines.append(f"Today is {name}'s birthday.")
    if customer.get("phone"):
        lines.append(f"📞 Phone: {customer['phone']}")
    lines.append("")
    lines.append("Don't forget to congratulate them! 🎂")
    return "\n".join(lines)


def debt_message(debt: Dict[str, Any], recipient: Recipient, decision: WindowDecision) -> str:
    currency = debt.get("currency") or DEBT_DEFAULT_CURRENCY
    phone = format_phone(debt.get("phone"), debt.get("countryCode"))
    lines = [
        "💰 Debt reminder!",
        "",
        f"Your debt to {debt.get('creditor') or 'your creditor'} is due tomorrow.",
        "",
        f"💵 Amount: {format_amount(debt.get('amount'))} {currency}",
        f"📅 Due date: {format_date(debt['dueDate'], decision.now.tzinfo)}",
    ]
    if phone:
        lines.append(f"📞 Phone: {phone}")
    lines.append("")
    lines.append("Please pay on time! ⏰")
    return "\n".join(lines)


def subscription_message(user: Dict[str, Any], recipient: Recipient, decision: WindowDecision) -> str:
    end_date = user["subscriptionEndDate"]
    end_str = format_date(end_date, decision.now.tzinfo)
    name = user.get("name") or "user"

    if recipient.role == RecipientRole.ADMIN:
        remaining = days_left(end_date, decision.now)
        lines = [
            "⚠️ Subscription expiry notice!",
            "",
            f"User: {name}",
        ]
        if user.get("phone"):
            lines.append(f"📞 Phone: {user['phone']}")
        lines.append(f"📅 Subscription ends: {end_str}")
        lines.append(f"⏰ Time left: {'tomorrow' if remaining <= 1 else f'{remaining} days'}")
        lines.append("")
        lines.append("Please contact the user and remind them about the payment.")
    else:
        lines = [
            "⚠️ Subscription expiry notice!",
            "",
            f"Dear {name}!",
            "",
            "Your subscription ends tomorrow.",
            "",
            f"📅 End date: {end_str}",
            "",
            "To keep using the service without interruption, please make a payment.",
        ]
    if SUPPORT_PHONE:
        lines.append("")
        lines.append(f"📞 Support: {SUPPORT_PHONE}")
    return "\n".join(lines)
