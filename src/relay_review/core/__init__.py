"""Core configuration for Relay Review."""
