"""Multi-tenant access control API."""
__version__ = "1.0.0"
