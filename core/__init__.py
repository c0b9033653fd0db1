"""Core module - cross-cutting infrastructure.

Logging and metrics shared by the resolver, the reconciliation pipeline and
the API. Business rules live in /profile_resolver/ and /reconciliation/.
"""

__version__ = "1.0.0"
