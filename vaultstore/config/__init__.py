"""Configuration package; see :mod:`vaultstore.config.settings`."""
