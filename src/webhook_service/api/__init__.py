"""aiohttp API layer."""
