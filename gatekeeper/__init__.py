"""Telegram access gate, discovery workflow and durable job scheduler."""
