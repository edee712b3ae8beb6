"""
identity_platform tests

Covers the authentication core of the identity platform:

- credential hashing (`hashing.py`)
- access token issuance and key rotation (`tokens.py`)
- SQL and in-memory session stores (`sessions.py`)
- the authentication service and explicit seeding (`service.py`, `seed.py`)
- the FastAPI endpoints and audit event log (`main.py`, `utils/event_logger.py`)
"""
