"""
Pytest test suite for the Payment Order API.

Test categories:
- Unit tests: state machine, validators, auth, rate limiter, polling agent
- Store/service tests: in-memory SQLite through SqlOrderStore
- Concurrency tests: racing transitions against an in-memory fake store
- API tests: full FastAPI app over httpx ASGITransport
"""
