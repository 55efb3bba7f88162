"""HTTP routers for harbourmaster."""

from harbourmaster.routers import containers, events, health, root

__all__ = ["containers", "events", "health", "root"]
