"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the fee ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Value is never created or destroyed
2. atomicity.py - Rejected calls change nothing
3. authorization.py - Only the owner changes the fee or collects fees
4. settlement.py - Withdraw pays exactly what is owed, once
5. determinism.py - Replaying the call log reproduces the state

These tests use hypothesis for property-based testing.
"""
