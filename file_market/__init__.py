"""Telegram file shop bot paid in Coin."""
