"""
auth — User credentials and session tokens.

Provides:
  • bcrypt password hashing & verification (``auth.password``)
  • JWT session-token issuance & validation (``auth.jwt``)
  • Register / Login / Logout account flows (``auth.service``)
  • API routes and the ``get_current_user`` FastAPI dependency
"""
