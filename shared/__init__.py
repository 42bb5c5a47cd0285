"""Logging helpers shared by every SeedKeeper component."""
