"""
HomeBase Gear Guard — Telegram Bot.

Telegram is the user interface: listing appliances and their warranty
status, upcoming maintenance, adding records and deleting appliances all
flow through this bot into the HomebaseService.

While the remote API is down every reply carries an offline banner, which
the user can dismiss (/dismiss) or act on (/retry).

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import html
import logging
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from homebase.config import settings
from homebase.core.errors import HomebaseError, NotFoundError, PersistenceError, ValidationError
from homebase.core.status import MAX_HORIZON_DAYS, parse_date, warranty_status
from homebase.data.models import WarrantyStatus

if TYPE_CHECKING:
    from homebase.core.orchestrator import HomebaseService

logger = logging.getLogger(__name__)

BANNER = (
    "💾 <b>Offline mode active</b>: the database is temporarily unavailable, "
    "using local storage. /retry to reconnect, /dismiss to hide this.\n\n"
)

_STATUS_ICONS = {
    WarrantyStatus.ACTIVE: "🟢",
    WarrantyStatus.EXPIRING_SOON: "🟡",
    WarrantyStatus.EXPIRED: "🔴",
}

_STATUS_FILTERS = {"all", *(s.value for s in WarrantyStatus)}


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, Any]],
) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Decorator that silently ignores messages from unauthorized users."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Any:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return None  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _service(context: ContextTypes.DEFAULT_TYPE) -> HomebaseService:
    return context.bot_data["service"]


def _banner(context: ContextTypes.DEFAULT_TYPE) -> str:
    """Offline banner, unless this chat dismissed it during the current outage."""
    if not _service(context).is_fallback_mode():
        context.chat_data.pop("banner_dismissed", None)
        return ""
    if context.chat_data.get("banner_dismissed"):
        return ""
    return BANNER


async def _reply(update: Update, context: ContextTypes.DEFAULT_TYPE, text: str, **kwargs) -> None:
    await update.effective_message.reply_text(
        _banner(context) + text, parse_mode="HTML", **kwargs,
    )


def _error_text(exc: HomebaseError) -> str:
    if isinstance(exc, ValidationError):
        lines = [f"• {html.escape(e.field)}: {html.escape(e.message)}" for e in exc.errors]
        return "Please fix the following:\n" + "\n".join(lines)
    if isinstance(exc, NotFoundError):
        return "That record doesn't exist. Check the ID and try again."
    if isinstance(exc, PersistenceError):
        return "⛔ Couldn't save anything: both the server and local storage failed."
    return "Something went wrong. Please try again."


def _split_args(context: ContextTypes.DEFAULT_TYPE) -> list[str]:
    """Split '/cmd a | b | c' arguments on '|'."""
    raw = " ".join(context.args or [])
    return [part.strip() for part in raw.split("|")] if raw.strip() else []


def _status_icon(expiry: str) -> str:
    return _STATUS_ICONS[warranty_status(expiry, soon_days=settings.EXPIRING_SOON_DAYS)]


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await _reply(
        update, context,
        "Welcome to <b>HomeBase Gear Guard</b>!\n\n"
        "I keep track of your appliances' warranties and maintenance:\n"
        "• /appliances to see everything you own\n"
        "• /addappliance to register a new one\n"
        "• /upcoming for maintenance due soon\n\n"
        "Type /help for the full command list.",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await _reply(
        update, context,
        "<b>Available commands:</b>\n"
        "/appliances [active|expiring-soon|expired] [search] — List appliances\n"
        "/appliance &lt;id&gt; — Appliance details, tasks and contacts\n"
        "/editappliance &lt;id&gt; | field | value — Change one appliance field\n"
        "/stats — Warranty summary\n"
        "/upcoming [days] — Maintenance due soon\n"
        "/addappliance — Register an appliance\n"
        "/addtask &lt;appliance_id&gt; | name | YYYY-MM-DD | frequency | provider | provider contact\n"
        "/addcontact &lt;appliance_id&gt; | name | phone | email | notes\n"
        "/done &lt;task_id&gt; — Mark a task completed\n"
        "/undone &lt;task_id&gt; — Reopen a completed task\n"
        "/deleteappliance — Delete an appliance with its tasks and contacts\n"
        "/retry — Try the server again\n"
        "/dismiss — Hide the offline banner\n"
        "/help — Show this message",
    )


@authorized_only
async def cmd_appliances(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /appliances [status] [search] — list appliances with warranty status.

    A leading all/active/expiring-soon/expired word filters by status; any
    other text searches name, brand, model and serial number.
    """
    args = list(context.args or [])
    status = None
    if args and args[0].lower() in _STATUS_FILTERS:
        status = args.pop(0).lower()
    search = " ".join(args).strip() or None

    appliances = await _service(context).appliances.list(search=search, status=status)
    if not appliances:
        await _reply(update, context, "No appliances found.")
        return

    lines = ["<b>Your appliances:</b>\n"]
    for a in appliances:
        lines.append(
            f"{_status_icon(a.warranty_expiry)} <code>{a.id}</code>\n"
            f"   {html.escape(a.name)} ({html.escape(a.brand)} {html.escape(a.model)}), "
            f"warranty until {a.warranty_expiry}"
        )
    await _reply(update, context, "\n".join(lines))


@authorized_only
async def cmd_appliance(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /appliance <id> — details with tasks and contacts."""
    if not context.args:
        await _reply(update, context, "Usage: /appliance &lt;id&gt;\nUse /appliances to see IDs.")
        return

    service = _service(context)
    appliance_id = context.args[0]
    try:
        appliance = await service.appliances.get(appliance_id)
    except HomebaseError as exc:
        await _reply(update, context, _error_text(exc))
        return

    tasks = await service.maintenance.list(appliance_id=appliance_id)
    contacts = await service.contacts.list(appliance_id=appliance_id)
    status = warranty_status(appliance.warranty_expiry, soon_days=settings.EXPIRING_SOON_DAYS)

    lines = [
        f"<b>{html.escape(appliance.name)}</b> — {html.escape(appliance.brand)} "
        f"{html.escape(appliance.model)}",
        f"Purchased {appliance.purchase_date}, {appliance.warranty_period_months} months warranty",
        f"{_STATUS_ICONS[status]} Warranty {status.value} (expires {appliance.warranty_expiry})",
    ]
    if appliance.serial_number:
        lines.append(f"Serial: {html.escape(appliance.serial_number)}")
    if appliance.manual_link:
        lines.append(f"Manual: {html.escape(appliance.manual_link)}")

    lines.append("\n<b>Maintenance:</b>")
    if not tasks:
        lines.append("  none")
    for t in tasks:
        mark = "✅" if t.completed else "⏳"
        lines.append(
            f"  {mark} <code>{t.id}</code> {html.escape(t.task_name)} "
            f"({t.frequency}, reminder {t.reminder_date})"
        )

    lines.append("\n<b>Contacts:</b>")
    if not contacts:
        lines.append("  none")
    for c in contacts:
        reach = ", ".join(x for x in (c.phone, c.email) if x)
        lines.append(f"  • {html.escape(c.contact_name)}: {html.escape(reach)}")

    await _reply(update, context, "\n".join(lines))


@authorized_only
async def cmd_stats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stats — warranty status counts."""
    stats = await _service(context).appliances.stats()
    await _reply(
        update, context,
        "<b>Warranty summary</b>\n"
        f"Total: {stats.total}\n"
        f"🟢 Active: {stats.active}\n"
        f"🟡 Expiring soon: {stats.expiring_soon}\n"
        f"🔴 Expired: {stats.expired}",
    )


@authorized_only
async def cmd_upcoming(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /upcoming [days] — incomplete tasks due soon."""
    days = None
    if context.args:
        try:
            days = int(context.args[0])
        except ValueError:
            days = -1
        if not 0 <= days <= MAX_HORIZON_DAYS:
            await _reply(
                update, context,
                f"Days must be a number from 0 to {MAX_HORIZON_DAYS}, e.g. /upcoming 30",
            )
            return

    tasks = await _service(context).maintenance.upcoming(days)
    if not tasks:
        await _reply(update, context, "No upcoming maintenance tasks.")
        return

    lines = ["<b>Upcoming maintenance:</b>\n"]
    for t in tasks:
        lines.append(
            f"• {t.reminder_date} — {html.escape(t.task_name)} "
            f"({html.escape(t.appliance_name)}) <code>{t.id}</code>"
        )
    await _reply(update, context, "\n".join(lines))


async def _set_task_completed(
    update: Update, context: ContextTypes.DEFAULT_TYPE, completed: bool,
) -> None:
    command = "/done" if completed else "/undone"
    if not context.args:
        await _reply(update, context, f"Usage: {command} &lt;task_id&gt;\nUse /upcoming to see IDs.")
        return

    try:
        task = await _service(context).maintenance.set_completed(context.args[0], completed)
    except HomebaseError as exc:
        await _reply(update, context, _error_text(exc))
        return
    if completed:
        await _reply(update, context, f"✅ Marked <b>{html.escape(task.task_name)}</b> as done.")
    else:
        await _reply(update, context, f"⏳ Reopened <b>{html.escape(task.task_name)}</b>.")


@authorized_only
async def cmd_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /done <task_id> — mark a maintenance task completed."""
    await _set_task_completed(update, context, True)


@authorized_only
async def cmd_undone(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /undone <task_id> — reopen a completed maintenance task."""
    await _set_task_completed(update, context, False)


# User-facing field name -> wire field
_EDITABLE_FIELDS = {
    "name": "name",
    "brand": "brand",
    "model": "model",
    "serial": "serialNumber",
    "purchased": "purchaseDate",
    "warranty": "warrantyPeriodMonths",
    "location": "purchaseLocation",
    "manual": "manualLink",
    "receipt": "receiptLink",
}


@authorized_only
async def cmd_editappliance(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /editappliance <id> | field | value — change one appliance field.

    Changing the purchase date or warranty length recomputes the expiry.
    An empty value clears optional fields (serial, location, manual, receipt).
    """
    parts = _split_args(context)
    field = parts[1].lower() if len(parts) == 3 else ""
    if field not in _EDITABLE_FIELDS:
        await _reply(
            update, context,
            "Usage: /editappliance &lt;id&gt; | field | value\n"
            f"Fields: {', '.join(_EDITABLE_FIELDS)}",
        )
        return

    appliance_id, _, value = parts
    try:
        appliance = await _service(context).appliances.update(
            appliance_id, {_EDITABLE_FIELDS[field]: value},
        )
    except HomebaseError as exc:
        await _reply(update, context, _error_text(exc))
        return
    await _reply(
        update, context,
        f"✏️ Updated <b>{html.escape(appliance.name)}</b>. "
        f"Warranty runs until {appliance.warranty_expiry}.",
    )


@authorized_only
async def cmd_addtask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addtask <appliance_id> | name | date | frequency | provider | contact."""
    parts = _split_args(context)
    if len(parts) != 6:
        await _reply(
            update, context,
            "Usage: /addtask &lt;appliance_id&gt; | name | YYYY-MM-DD | "
            "one-time/monthly/quarterly/bi-yearly/yearly | provider | provider contact",
        )
        return

    appliance_id, name, task_date, frequency, provider, provider_contact = parts
    try:
        task = await _service(context).maintenance.create({
            "applianceId": appliance_id,
            "taskName": name,
            "date": task_date,
            "frequency": frequency.lower(),
            "serviceProviderName": provider,
            "serviceProviderContact": provider_contact,
        })
    except HomebaseError as exc:
        await _reply(update, context, _error_text(exc))
        return
    await _reply(
        update, context,
        f"🛠 Task <b>{html.escape(task.task_name)}</b> added. Reminder on {task.reminder_date}.",
    )


@authorized_only
async def cmd_addcontact(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addcontact <appliance_id> | name | phone | email | notes."""
    parts = _split_args(context)
    if not 2 <= len(parts) <= 5:
        await _reply(
            update, context,
            "Usage: /addcontact &lt;appliance_id&gt; | name | phone | email | notes",
        )
        return

    parts += [""] * (5 - len(parts))
    appliance_id, name, phone, email, notes = parts
    try:
        contact = await _service(context).contacts.create({
            "applianceId": appliance_id,
            "contactName": name,
            "phone": phone,
            "email": email,
            "notes": notes,
        })
    except HomebaseError as exc:
        await _reply(update, context, _error_text(exc))
        return
    await _reply(update, context, f"📇 Contact <b>{html.escape(contact.contact_name)}</b> added.")


@authorized_only
async def cmd_deleteappliance(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deleteappliance — pick an appliance from inline buttons."""
    appliances = await _service(context).appliances.list()
    if not appliances:
        await _reply(update, context, "No appliances to delete.")
        return

    keyboard = [
        [InlineKeyboardButton(f"{a.name} ({a.brand})", callback_data=f"delapp:{a.id}")]
        for a in appliances
    ]
    await _reply(
        update, context,
        "Which appliance do you want to delete? Its tasks and contacts go with it.",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


@authorized_only
async def _handle_deleteappliance_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the inline button tap to delete an appliance."""
    query = update.callback_query
    await query.answer()
    appliance_id = query.data.split(":", 1)[1]

    try:
        await _service(context).appliances.delete(appliance_id)
    except HomebaseError as exc:
        await query.edit_message_text(_banner(context) + _error_text(exc), parse_mode="HTML")
        return
    await query.edit_message_text(
        _banner(context) + "🗑 Appliance deleted, along with its tasks and contacts.",
        parse_mode="HTML",
    )


@authorized_only
async def cmd_dismiss(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /dismiss — hide the offline banner until the mode changes."""
    context.chat_data["banner_dismissed"] = True
    await update.effective_message.reply_text("Offline banner hidden.")


@authorized_only
async def cmd_retry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /retry — forget the recorded outage and check the server."""
    service = _service(context)
    service.retry_remote()
    context.chat_data.pop("banner_dismissed", None)
    await service.appliances.stats()
    if service.is_fallback_mode():
        await _reply(update, context, "Still can't reach the server. Your data stays saved locally.")
    else:
        await _reply(update, context, "✅ Connected to the server.")


# ---------------------------------------------------------------------------
# /addappliance conversation
# ---------------------------------------------------------------------------

(
    APPLIANCE_NAME,
    APPLIANCE_BRAND,
    APPLIANCE_MODEL,
    APPLIANCE_PURCHASE_DATE,
    APPLIANCE_WARRANTY,
    APPLIANCE_CONFIRM,
) = range(6)

_DRAFT_KEYS = [
    "draft_name",
    "draft_brand",
    "draft_model",
    "draft_purchase_date",
    "draft_warranty_months",
]


@authorized_only
async def cmd_addappliance(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await update.message.reply_text("What's the appliance called? (e.g. 'Kitchen fridge')")
    return APPLIANCE_NAME


async def addappliance_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data["draft_name"] = update.message.text.strip()
    await update.message.reply_text("Brand?")
    return APPLIANCE_BRAND


async def addappliance_brand(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data["draft_brand"] = update.message.text.strip()
    await update.message.reply_text("Model?")
    return APPLIANCE_MODEL


async def addappliance_model(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data["draft_model"] = update.message.text.strip()
    await update.message.reply_text("Purchase date? (YYYY-MM-DD)")
    return APPLIANCE_PURCHASE_DATE


async def addappliance_purchase_date(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    try:
        parse_date(text)
    except ValueError:
        await update.message.reply_text("Please use the format YYYY-MM-DD, e.g. 2024-01-15.")
        return APPLIANCE_PURCHASE_DATE
    context.user_data["draft_purchase_date"] = text
    await update.message.reply_text("Warranty length in months? (e.g. 24)")
    return APPLIANCE_WARRANTY


async def addappliance_warranty(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    try:
        months = int(text)
    except ValueError:
        months = 0
    if months <= 0:
        await update.message.reply_text("Please send a positive whole number of months.")
        return APPLIANCE_WARRANTY

    context.user_data["draft_warranty_months"] = months
    ud = context.user_data
    await update.message.reply_text(
        f"Add {ud['draft_name']} ({ud['draft_brand']} {ud['draft_model']}), "
        f"bought {ud['draft_purchase_date']} with {months} months warranty?\n"
        "Reply 'yes' to save or 'no' to cancel."
    )
    return APPLIANCE_CONFIRM


async def addappliance_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    answer = update.message.text.strip().lower()
    if answer not in ("yes", "y"):
        _clear_draft(context)
        await update.message.reply_text("Cancelled.")
        return ConversationHandler.END

    ud = context.user_data
    try:
        appliance = await _service(context).appliances.create({
            "name": ud["draft_name"],
            "brand": ud["draft_brand"],
            "model": ud["draft_model"],
            "purchaseDate": ud["draft_purchase_date"],
            "warrantyPeriodMonths": ud["draft_warranty_months"],
        })
    except HomebaseError as exc:
        logger.error("/addappliance error: %s", exc)
        await _reply(update, context, _error_text(exc))
        _clear_draft(context)
        return ConversationHandler.END

    _clear_draft(context)
    await _reply(
        update, context,
        f"✅ Saved <b>{html.escape(appliance.name)}</b>. "
        f"Warranty runs until {appliance.warranty_expiry}.",
    )
    return ConversationHandler.END


async def addappliance_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    _clear_draft(context)
    await update.message.reply_text("Cancelled.")
    return ConversationHandler.END


def _clear_draft(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in _DRAFT_KEYS:
        context.user_data.pop(key, None)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(service: HomebaseService | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        service: HomebaseService to use. Defaults to one wired from settings.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if service is None:
        from homebase.core.orchestrator import create_service
        service = create_service()

    app.bot_data["service"] = service

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("appliances", cmd_appliances))
    app.add_handler(CommandHandler("appliance", cmd_appliance))
    app.add_handler(CommandHandler("editappliance", cmd_editappliance))
    app.add_handler(CommandHandler("stats", cmd_stats))
    app.add_handler(CommandHandler("upcoming", cmd_upcoming))
    app.add_handler(CommandHandler("done", cmd_done))
    app.add_handler(CommandHandler("undone", cmd_undone))
    app.add_handler(CommandHandler("addtask", cmd_addtask))
    app.add_handler(CommandHandler("addcontact", cmd_addcontact))
    app.add_handler(CommandHandler("deleteappliance", cmd_deleteappliance))
    app.add_handler(CommandHandler("dismiss", cmd_dismiss))
    app.add_handler(CommandHandler("retry", cmd_retry))
    app.add_handler(CallbackQueryHandler(_handle_deleteappliance_callback, pattern=r"^delapp:"))

    _text = filters.TEXT & ~filters.COMMAND
    addappliance_conv = ConversationHandler(
        entry_points=[CommandHandler("addappliance", cmd_addappliance)],
        states={
            APPLIANCE_NAME: [MessageHandler(_text, addappliance_name)],
            APPLIANCE_BRAND: [MessageHandler(_text, addappliance_brand)],
            APPLIANCE_MODEL: [MessageHandler(_text, addappliance_model)],
            APPLIANCE_PURCHASE_DATE: [MessageHandler(_text, addappliance_purchase_date)],
            APPLIANCE_WARRANTY: [MessageHandler(_text, addappliance_warranty)],
            APPLIANCE_CONFIRM: [MessageHandler(_text, addappliance_confirm)],
        },
        fallbacks=[CommandHandler("cancel", addappliance_cancel)],
    )
    app.add_handler(addappliance_conv)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    import sys

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not settings.TELEGRAM_BOT_TOKEN or settings.TELEGRAM_BOT_TOKEN.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    logger.info("Starting HomeBase Gear Guard bot against %s", settings.API_BASE_URL)
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
