"""
Integration tests for the viral score oracle.

These tests wire the real service, engine, signer, Merkle builder and
coordinator together over in-memory repositories and a mocked contract.

Run with:
    pytest tests/integration/ -v -m integration

Skip with:
    pytest -m "not integration"
"""
