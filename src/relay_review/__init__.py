"""Relay Review: moderation context and decision ledger for a relay dashboard."""
