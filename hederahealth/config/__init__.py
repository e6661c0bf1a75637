"""Configuration package. See :mod:`hederahealth.config.settings`."""
