"""aiohttp HTTP surface for slotbot_lite."""
