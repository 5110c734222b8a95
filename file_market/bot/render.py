from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Any, Sequence

from file_market.shared.money import from_sats

EMPTY_SHOP_TEXT = "<i>This shop has no items available.</i>"


@dataclass(frozen=True)
class ShopView:
    text: str
    page: int
    has_prev: bool
    has_next: bool
    can_buy: bool


def render_listing(
    items: Sequence[dict[str, Any]],
    page: int,
    page_size: int,
    reputation: int,
    *,
    title: str = "🛍️ Shop",
) -> ShopView:
    """
    items = one page of the shop in creation order; numbering continues across pages
    (page 1 -> 1..5, page 2 -> 6..10 with page_size=5).
    """
    offset = max(0, int(page)) * int(page_size)

    lines: list[str] = []
    for i, it in enumerate(items):
        name = html.escape(str(it.get("name") or ""))
        price = from_sats(int(it.get("price_sats") or 0))
        amount = int(it.get("amount") or 0)
        lines.append(f"<b>{offset + i + 1}.</b> {name} — <b>{price}</b> coins <i>(x{amount})</i>")

    body = "\n".join(lines) if lines else EMPTY_SHOP_TEXT

    text = (
        f"<b>{html.escape(title)}</b>\n\n"
        f"{body}\n\n"
        f"⭐ Reputation: <b>{int(reputation)}</b>\n"
        f"Page {int(page) + 1}"
    )

    return ShopView(
        text=text,
        page=int(page),
        has_prev=int(page) > 0,
        # full page => maybe more; empty next page is fine (store returns nothing)
        has_next=len(items) >= int(page_size),
        can_buy=len(items) > 0,
    )
