"""Constants package for the storefront runtime."""

from .slot_templates import DEFAULT_TEMPLATES, get_default_template

__all__ = [
    "DEFAULT_TEMPLATES",
    "get_default_template",
]
