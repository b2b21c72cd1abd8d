"""Adapters binding the core to httpx and web frameworks."""
