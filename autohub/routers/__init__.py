"""HTTP routers, one per domain, mounted under /api."""
