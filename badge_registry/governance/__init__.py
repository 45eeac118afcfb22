"""Capability checks and the pause switch."""
