"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. rounding.py - Half-up rounding, away from zero for signed values
2. temporal.py - Index monotonicity and time ordering
3. idempotency.py - Repeated synchronization changes nothing
4. atomicity.py - All-or-nothing pool operations
5. conservation.py - Market accounting balances
6. determinism.py - Reproducible behavior
7. liquidation.py - Liquidations improve health and respect the bad-debt floor

These tests use hypothesis for property-based testing.
"""
