# AuthVault Test Suite
"""
Test suite including:
- Unit tests (passwords, tokens, OTP, MFA engine, stores, audit, config)
- Orchestrator and end-to-end scenario tests
- Security tests (tampering, concurrent use, secret hygiene)

Run with: pytest
"""
