from __future__ import annotations

import html
import logging
import time

from aiogram import Bot, F, Router
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError
from aiogram.filters import Command, CommandObject, CommandStart, ExceptionTypeFilter, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.fsm.storage.base import StorageKey
from aiogram.types import BufferedInputFile, CallbackQuery, ErrorEvent, Message

from file_market.bot.keyboards import (
    CB_BUY,
    CB_NEXT,
    CB_NOOP,
    CB_OPEN_SHOP,
    CB_PREV,
    CB_VOTE_DOWN,
    CB_VOTE_UP,
    panel_kb,
    shop_kb,
)
from file_market.bot.render import ShopView, render_listing
from file_market.config import settings
from file_market.core.errors import SessionExpired, ShopError
from file_market.core.purchase import PurchaseReceipt, PurchaseService
from file_market.core.sessions import SessionRegistry, UploadDraft
from file_market.repo import VOTE_DOWN, VOTE_UP, ItemsRepo, PurchasesRepo, ShopsRepo, UsersRepo
from file_market.shared.money import from_sats, to_sats

log = logging.getLogger(__name__)
router = Router()

SKIP_CARD = {"-", "skip", "no"}

PRIVATE = F.chat.type == "private"


class BuyFlow(StatesGroup):
    waiting_item = State()
    waiting_card = State()


def help_text() -> str:
    return (
        f"🛒 <b>{html.escape(settings.BOT_NAME)} — Help</b>\n\n"
        "<b>Selling</b>\n"
        "• /additem &lt;name&gt; &lt;price&gt; &lt;amount&gt; → add a file "
        f"(max {settings.MAX_FILE_MB}MB)\n"
        f"• Upload the file within {settings.UPLOAD_WINDOW_SECONDS // 60} minutes\n"
        "• /remove &lt;number&gt; → remove an item\n"
        "• /card &lt;code&gt; → save your card (payouts + fallback payment), private chat only\n\n"
        "<b>Buying</b>\n"
        "• /shop &lt;user id&gt; or reply /shop to a seller's message\n"
        "• Browse pages, press 🛒 Buy, finish in the private chat with the bot\n"
        "• /purchases → your last purchases\n\n"
        "<b>Voting</b>\n"
        "• 👍 / 👎 after purchase, one vote per purchase\n\n"
        "<b>Panel</b>\n"
        "• /panel → public shop panel\n\n"
        "Powered by Coin"
    )


# ======================================================================
# Private replies
# ======================================================================

def _is_private(message: Message | None) -> bool:
    return message is not None and message.chat.type == "private"


async def _tell_user(bot: Bot, message: Message, text: str, **kwargs) -> None:
    """
    Feedback meant only for the author of `message`: in place when the chat is private,
    otherwise as a direct message. Dropped (debug log) if the user never opened the bot.
    """
    if _is_private(message):
        await message.answer(text, **kwargs)
        return
    if not message.from_user:
        return
    try:
        await bot.send_message(message.from_user.id, text, **kwargs)
    except (TelegramForbiddenError, TelegramBadRequest) as e:
        log.debug("private notice to %s dropped: %s", message.from_user.id, e)


def _private_state(state: FSMContext, bot: Bot, user_id: int) -> FSMContext:
    # FSM key of the user's private chat with the bot (chat_id == user_id)
    key = StorageKey(bot_id=bot.id, chat_id=user_id, user_id=user_id)
    return FSMContext(storage=state.storage, key=key)


# ======================================================================
# Shop rendering
# ======================================================================

async def _build_shop_view(sessions: SessionRegistry, viewer_id: str) -> ShopView:
    view = sessions.get_browse(viewer_id)
    if view is None:
        raise SessionExpired()

    page_size = int(settings.PAGE_SIZE)
    items = await ItemsRepo.list_items(view.owner_id, offset=view.page * page_size, limit=page_size)
    reputation = await ShopsRepo.get_reputation(view.owner_id)
    return render_listing(items, view.page, page_size, reputation)


async def _send_shop(message: Message, sessions: SessionRegistry, viewer_id: str) -> None:
    view = await _build_shop_view(sessions, viewer_id)
    await message.answer(view.text, parse_mode="HTML", reply_markup=shop_kb(view))


async def _edit_shop(message: Message, sessions: SessionRegistry, viewer_id: str) -> None:
    view = await _build_shop_view(sessions, viewer_id)
    try:
        await message.edit_text(view.text, parse_mode="HTML", reply_markup=shop_kb(view))
    except TelegramBadRequest:
        # "message is not modified"
        return


# ======================================================================
# Commands
# ======================================================================

@router.message(CommandStart())
@router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(help_text(), parse_mode="HTML")


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext) -> None:
    await state.clear()
    await message.answer("✖️ Cancelled.")


@router.message(Command("panel"))
async def cmd_panel(message: Message, bot: Bot) -> None:
    if not message.from_user:
        return
    user_id = str(message.from_user.id)
    await UsersRepo.ensure_user(user_id)

    now = int(time.time() * 1000)
    cooldown_ms = int(settings.PANEL_COOLDOWN_SECONDS) * 1000
    last = await UsersRepo.get_panel_ts(user_id)
    if now - last < cooldown_ms:
        wait = -(-(cooldown_ms - (now - last)) // 1000)
        await _tell_user(bot, message, f"⏳ Please wait {wait}s before posting another panel.")
        return

    await UsersRepo.touch_panel(user_id, now)

    # the panel itself is public
    name = html.escape(message.from_user.full_name)
    await message.answer(
        "🛍️ <b>Shop Panel</b>\n\n"
        f"Welcome to <b>{name}</b>'s shop!\n\n"
        "Click the button below to browse items.\n\n"
        "<i>Powered by Coin</i>",
        parse_mode="HTML",
        reply_markup=panel_kb(user_id),
    )


@router.message(Command("shop"))
async def cmd_shop(message: Message, command: CommandObject, bot: Bot, sessions: SessionRegistry) -> None:
    if not message.from_user:
        return

    owner_id: str | None = None
    arg = (command.args or "").strip()
    if arg.isdigit():
        owner_id = arg
    elif message.reply_to_message and message.reply_to_message.from_user:
        owner_id = str(message.reply_to_message.from_user.id)

    if not owner_id:
        await _tell_user(bot, message, "❌ Invalid user. Use /shop <user id> or reply /shop to the seller's message.")
        return

    sessions.start_browse(str(message.from_user.id), owner_id)
    await _send_shop(message, sessions, str(message.from_user.id))


@router.message(Command("additem"))
async def cmd_additem(message: Message, command: CommandObject, bot: Bot, sessions: SessionRegistry) -> None:
    if not message.from_user:
        return

    parts = (command.args or "").rsplit(maxsplit=2)
    if len(parts) != 3:
        await _tell_user(bot, message, "❌ Usage: /additem <name> <price> <amount>")
        return

    name, price_raw, amount_raw = parts[0].strip(), parts[1], parts[2]
    price_sats = to_sats(price_raw)
    amount = int(amount_raw) if amount_raw.lstrip("-").isdigit() else 0

    if not name or price_sats <= 0 or amount <= 0:
        await _tell_user(bot, message, "❌ Invalid price or amount.")
        return

    user_id = str(message.from_user.id)
    await UsersRepo.ensure_user(user_id)
    sessions.start_upload(user_id, UploadDraft(name=name[:128], price_sats=price_sats, amount=amount))

    minutes = max(1, int(settings.UPLOAD_WINDOW_SECONDS) // 60)
    await _tell_user(bot, message, f"📤 Send the file now (max {settings.MAX_FILE_MB}MB). You have {minutes} minutes.")


@router.message(Command("remove"))
async def cmd_remove(message: Message, command: CommandObject, bot: Bot) -> None:
    if not message.from_user:
        return

    arg = (command.args or "").strip()
    number = int(arg) if arg.isdigit() else 0
    if number <= 0:
        await _tell_user(bot, message, "❌ Invalid item number.")
        return

    user_id = str(message.from_user.id)
    if await ItemsRepo.count_items(user_id) == 0:
        await _tell_user(bot, message, "❌ Your shop is empty.")
        return

    item = await ItemsRepo.remove_item_by_position(user_id, number)
    await _tell_user(
        bot,
        message,
        f"🗑️ Item <b>{html.escape(str(item['name']))}</b> removed from your shop.",
        parse_mode="HTML",
    )


@router.message(Command("card"))
async def cmd_card(message: Message, command: CommandObject, bot: Bot) -> None:
    if not message.from_user:
        return

    code = (command.args or "").strip()
    if not code:
        await _tell_user(bot, message, "❌ Usage: /card <card code>")
        return

    await UsersRepo.set_card_code(str(message.from_user.id), code)
    try:
        # card code should not stay in the chat history
        await message.delete()
    except TelegramBadRequest:
        pass

    text = "💳 Card saved."
    if not _is_private(message):
        text += " Next time send /card in the private chat with the bot."
    await _tell_user(bot, message, text)


@router.message(Command("purchases"))
async def cmd_purchases(message: Message, bot: Bot) -> None:
    if not message.from_user:
        return

    rows = await PurchasesRepo.list_for_buyer(str(message.from_user.id), limit=10)
    if not rows:
        await _tell_user(bot, message, "🧾 No purchases yet.")
        return

    lines = ["🧾 <b>Your purchases</b>\n"]
    for p in rows:
        lines.append(
            f"• {html.escape(str(p.get('item_name') or p['item_id']))} — "
            f"<b>{from_sats(int(p['price_sats']))}</b> coins — tx <code>{html.escape(str(p.get('tx_id') or 'N/A'))}</code>"
        )
    await _tell_user(bot, message, "\n".join(lines), parse_mode="HTML")


# ======================================================================
# File upload (finalizes /additem)
# ======================================================================

@router.message(F.document)
async def on_document(message: Message, bot: Bot, sessions: SessionRegistry) -> None:
    if not message.from_user or message.from_user.is_bot or not message.document:
        return

    user_id = str(message.from_user.id)
    # taken right away: a second document racing this one finds nothing
    draft = sessions.consume_upload(user_id)
    if draft is None:
        return

    doc = message.document
    try:
        if int(doc.file_size or 0) > settings.max_file_bytes:
            sessions.start_upload(user_id, draft)
            await _tell_user(bot, message, f"❌ File too large. Max {settings.MAX_FILE_MB}MB.")
            return

        buf = await bot.download(doc)
        data = buf.getvalue() if buf is not None else b""
        if len(data) > settings.max_file_bytes:
            sessions.start_upload(user_id, draft)
            await _tell_user(bot, message, f"❌ File too large. Max {settings.MAX_FILE_MB}MB.")
            return

        await ItemsRepo.add_item(
            user_id,
            name=draft.name,
            price_sats=draft.price_sats,
            amount=draft.amount,
            filename=doc.file_name or draft.name,
            file_bytes=data,
        )
    except Exception:
        # download or save failed: seller can send the file again
        sessions.start_upload(user_id, draft)
        raise

    await _tell_user(bot, message, f"✅ Item <b>{html.escape(draft.name)}</b> added to your shop.", parse_mode="HTML")


# ======================================================================
# Buy flow (item -> card -> purchase), private chat only
# ======================================================================

@router.message(StateFilter(BuyFlow.waiting_item), PRIVATE, F.text, ~F.text.startswith("/"))
async def buy_item_entered(message: Message, state: FSMContext, sessions: SessionRegistry) -> None:
    if not message.from_user:
        return
    if sessions.get_browse(str(message.from_user.id)) is None:
        await state.clear()
        raise SessionExpired()

    await state.update_data(item=(message.text or "").strip()[:100])
    await state.set_state(BuyFlow.waiting_card)
    await message.answer("💳 Send your card code, or <b>-</b> to use your saved card.", parse_mode="HTML")


@router.message(StateFilter(BuyFlow.waiting_card), PRIVATE, F.text, ~F.text.startswith("/"))
async def buy_card_entered(
    message: Message,
    state: FSMContext,
    purchases: PurchaseService,
) -> None:
    if not message.from_user:
        return

    data = await state.get_data()
    await state.clear()

    raw = (message.text or "").strip()
    card = None if raw.lower() in SKIP_CARD else raw[:64]
    if card:
        try:
            await message.delete()
        except TelegramBadRequest:
            pass

    buyer_id = message.from_user.id
    try:
        receipt = await purchases.purchase(str(buyer_id), str(data.get("item") or ""), card)
    except ShopError as e:
        await message.answer(e.text)
        return
    except Exception:
        log.exception("Purchase error buyer=%s", buyer_id)
        await message.answer("❌ An error occurred during purchase.")
        return

    async def _to_buyer(r: PurchaseReceipt) -> None:
        await message.answer_document(BufferedInputFile(r.file, filename=r.filename), caption=r.summary)

    # this chat is the buyer's private chat, so there is no separate copy to send
    if not await purchases.deliver(receipt, _to_buyer):
        await message.answer(f"⚠️ Paid, but the file could not be sent. Purchase id: {receipt.purchase_id}")


# ======================================================================
# Callbacks
# ======================================================================

@router.callback_query(F.data.startswith(CB_OPEN_SHOP))
async def cb_open_shop(callback: CallbackQuery, sessions: SessionRegistry) -> None:
    owner_id = (callback.data or "")[len(CB_OPEN_SHOP):]
    if not owner_id or not await ShopsRepo.get(owner_id):
        await callback.answer("❌ Shop owner not found.", show_alert=True)
        return

    viewer_id = str(callback.from_user.id)
    sessions.start_browse(viewer_id, owner_id)
    if callback.message:
        await _send_shop(callback.message, sessions, viewer_id)
    await callback.answer()


@router.callback_query(F.data.in_({CB_PREV, CB_NEXT}))
async def cb_paginate(callback: CallbackQuery, sessions: SessionRegistry) -> None:
    viewer_id = str(callback.from_user.id)
    delta = -1 if callback.data == CB_PREV else 1
    if sessions.advance_page(viewer_id, delta) is None:
        raise SessionExpired()

    if callback.message:
        await _edit_shop(callback.message, sessions, viewer_id)
    await callback.answer()


@router.callback_query(F.data == CB_BUY)
async def cb_buy(callback: CallbackQuery, state: FSMContext, bot: Bot, sessions: SessionRegistry) -> None:
    buyer_id = callback.from_user.id
    if sessions.get_browse(str(buyer_id)) is None:
        raise SessionExpired()

    # item and card are asked in the private chat, wherever the button was pressed
    buy_state = _private_state(state, bot, buyer_id)
    await buy_state.set_state(BuyFlow.waiting_item)
    try:
        await bot.send_message(buyer_id, "🛒 Send the item name or number. /cancel to stop.")
    except TelegramForbiddenError:
        await buy_state.clear()
        await callback.answer("❌ Open a private chat with the bot (press Start), then try again.", show_alert=True)
        return

    if _is_private(callback.message):
        await callback.answer()
    else:
        await callback.answer("📩 Continue in the private chat with the bot.", show_alert=True)


@router.callback_query(F.data.in_({CB_VOTE_UP, CB_VOTE_DOWN}))
async def cb_vote(callback: CallbackQuery, sessions: SessionRegistry) -> None:
    viewer_id = str(callback.from_user.id)
    view = sessions.get_browse(viewer_id)
    if view is None:
        raise SessionExpired()

    delta = VOTE_UP if callback.data == CB_VOTE_UP else VOTE_DOWN
    await PurchasesRepo.record_vote(viewer_id, view.owner_id, delta)
    await callback.answer("✅ Positive vote recorded!" if delta > 0 else "⚠️ Negative vote recorded.", show_alert=True)

    if callback.message:
        await _edit_shop(callback.message, sessions, viewer_id)


@router.callback_query(F.data == CB_NOOP)
async def cb_noop(callback: CallbackQuery) -> None:
    await callback.answer()


# ======================================================================
# Errors: user-facing ones go back to whoever triggered them, never to the group
# ======================================================================

@router.error(ExceptionTypeFilter(ShopError))
async def on_shop_error(event: ErrorEvent, bot: Bot) -> None:
    text = getattr(event.exception, "text", None) or ShopError.text
    cq = event.update.callback_query
    if cq is not None:
        # alerts are shown to the presser only
        await cq.answer(text, show_alert=True)
        return
    if event.update.message is not None:
        await _tell_user(bot, event.update.message, text)


@router.error()
async def on_unexpected_error(event: ErrorEvent, bot: Bot) -> None:
    log.exception("handler failed update=%s: %s", event.update.update_id, event.exception, exc_info=event.exception)
    cq = event.update.callback_query
    try:
        if cq is not None:
            await cq.answer("❌ Something went wrong.", show_alert=True)
        elif event.update.message is not None:
            await _tell_user(bot, event.update.message, "❌ Something went wrong.")
    except TelegramBadRequest:
        pass
