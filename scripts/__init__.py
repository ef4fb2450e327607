"""
Entry point scripts for the Deribit HTTP client.

Scripts:
- public_endpoints.py: Tour the unauthenticated market data and system endpoints
- session_lifecycle.py: Authenticate, refresh, fork/exchange and log out
"""
