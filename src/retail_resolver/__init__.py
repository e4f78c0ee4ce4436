"""
Retail resolver: drugstore product resolution and availability engine.

Resolves barcodes against the dm, Rossmann, Müller and Budni storefronts,
keeps tracked articles' prices and saved-store stock fresh, and maps
receipt lines back to catalog products.
"""

__all__ = [
    "config",
    "engine",
    "logging",
    "paths",
]
