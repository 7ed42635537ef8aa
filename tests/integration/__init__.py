"""
Integration Tests Package

HTTP-level tests for the level serving API.

TEST AXIOMS:
=============
1. Determinism: same published family + request = same served level
2. Validation is a report, never a rejected request
3. Explicit failure: unknown content is a 404, not an empty payload
"""
