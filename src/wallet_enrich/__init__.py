"""
wallet-enrich: Enrichment and resolution layer for wallet-os.

Resolves official domains and icons for subscriptions, extracts structured
subscription fields from free text, and produces spending advice, falling
back through cached, remote and heuristic sources.
"""

__version__ = "0.1.0"
