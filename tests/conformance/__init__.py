"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending protocol.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Pool books reconcile with the pool wallet and the ledger,
   including under repeated identical operations
2. atomicity.py - All-or-nothing entry points
3. state_machine.py - One-way loan status and the utilization cap
4. idempotency.py - Duplicate execution and read-only queries
5. determinism.py - Reproducible runs

These tests use hypothesis for property-based testing.
"""
