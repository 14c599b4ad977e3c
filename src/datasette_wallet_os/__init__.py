"""Datasette plugin serving the wallet-os subscription tracker API."""

from datasette_wallet_os.plugin import (
    register_routes,
    skip_csrf,
    startup,
)

__all__ = [
    "register_routes",
    "skip_csrf",
    "startup",
]
