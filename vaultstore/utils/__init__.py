"""Shared helpers for the vaultstore package."""
