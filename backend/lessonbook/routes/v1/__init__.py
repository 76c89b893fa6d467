"""Version 1 API routers, mounted under /api/v1 in main.py."""
