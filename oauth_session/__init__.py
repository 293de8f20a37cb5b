"""Google sign-in with server-side sessions and a durable user table."""

__version__ = "0.1.0"
