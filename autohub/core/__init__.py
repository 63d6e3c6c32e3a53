"""
Core utilities shared across the AutoHub API.

Configuration, logging, error types, the per-store serialization queue,
password hashing, rate limiting and the SMTP adapter live here; routers
and services depend on these instead of reading the environment directly.
"""
