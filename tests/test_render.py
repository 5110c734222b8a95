"""Tests for shop listing rendering and its keyboard."""
from file_market.bot.keyboards import CB_BUY, CB_NEXT, CB_NOOP, CB_PREV, CB_VOTE_DOWN, CB_VOTE_UP, panel_kb, shop_kb
from file_market.bot.render import EMPTY_SHOP_TEXT, render_listing


def _items(n, start=0):
    return [
        {"name": f"File <{i}>", "price_sats": 150_000_000, "amount": i + 1}
        for i in range(start, start + n)
    ]


def test_first_page_numbering_and_flags():
    view = render_listing(_items(5), page=0, page_size=5, reputation=15)

    assert "<b>1.</b> File &lt;0&gt;" in view.text
    assert "<b>5.</b>" in view.text
    assert "1.50000000" in view.text
    assert "(x1)" in view.text
    assert "⭐ Reputation: <b>15</b>" in view.text
    assert "Page 1" in view.text
    assert not view.has_prev
    assert view.has_next
    assert view.can_buy


def test_numbering_continues_on_later_pages():
    view = render_listing(_items(2, start=5), page=1, page_size=5, reputation=0)

    assert "<b>6.</b>" in view.text
    assert "<b>7.</b>" in view.text
    assert "<b>1.</b>" not in view.text
    assert view.has_prev
    assert not view.has_next


def test_empty_page():
    view = render_listing([], page=2, page_size=5, reputation=-10)

    assert EMPTY_SHOP_TEXT in view.text
    assert "Page 3" in view.text
    assert not view.can_buy
    assert not view.has_next


def test_keyboard_disables_unavailable_navigation():
    view = render_listing(_items(1), page=0, page_size=5, reputation=0)
    rows = shop_kb(view).inline_keyboard

    assert [b.callback_data for b in rows[0]] == [CB_NOOP, CB_BUY, CB_NOOP]
    assert [b.callback_data for b in rows[1]] == [CB_VOTE_UP, CB_VOTE_DOWN]

    view = render_listing(_items(5), page=1, page_size=5, reputation=0)
    assert [b.callback_data for b in shop_kb(view).inline_keyboard[0]] == [CB_PREV, CB_BUY, CB_NEXT]


def test_panel_button_carries_owner():
    kb = panel_kb("777")
    assert kb.inline_keyboard[0][0].callback_data == "open_shop:777"
