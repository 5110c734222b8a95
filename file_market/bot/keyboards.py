from __future__ import annotations

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from file_market.bot.render import ShopView

# callback_data
CB_OPEN_SHOP = "open_shop:"
CB_PREV = "shop:prev"
CB_NEXT = "shop:next"
CB_BUY = "shop:buy"
CB_NOOP = "shop:noop"
CB_VOTE_UP = "vote:up"
CB_VOTE_DOWN = "vote:down"

BTN_OPEN_SHOP = "🛍️ Open Shop"


def panel_kb(owner_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text=BTN_OPEN_SHOP, callback_data=f"{CB_OPEN_SHOP}{owner_id}")]]
    )


def shop_kb(view: ShopView) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.row(
        InlineKeyboardButton(text="◀", callback_data=CB_PREV if view.has_prev else CB_NOOP),
        InlineKeyboardButton(text="🛒 Buy" if view.can_buy else "·", callback_data=CB_BUY if view.can_buy else CB_NOOP),
        InlineKeyboardButton(text="▶", callback_data=CB_NEXT if view.has_next else CB_NOOP),
        width=3,
    )
    kb.row(
        InlineKeyboardButton(text="👍", callback_data=CB_VOTE_UP),
        InlineKeyboardButton(text="👎", callback_data=CB_VOTE_DOWN),
        width=2,
    )
    return kb.as_markup()
