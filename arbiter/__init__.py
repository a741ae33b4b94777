"""Arbiter: rules engine and combat state machine for agent-played tabletop RPG sessions."""

__version__ = "0.1.0"
