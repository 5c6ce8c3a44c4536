"""Telegram keyboard adapter.

Converts plain keyboard row data from ``gatekeeper.bot.keyboards`` into
Telegram markup objects.
"""

from typing import Dict, List

from telegram import InlineKeyboardButton, InlineKeyboardMarkup


def inline_keyboard_from_rows(
    rows: List[List[Dict[str, str]]],
) -> InlineKeyboardMarkup:
    """Convert rows of {text, callback_data} dicts to InlineKeyboardMarkup."""
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton(text=btn["text"], callback_data=btn["callback_data"])
                for btn in row
            ]
            for row in rows
        ]
    )
