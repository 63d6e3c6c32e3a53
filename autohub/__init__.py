"""AutoHub storefront backend: JSON document stores behind a FastAPI service."""
