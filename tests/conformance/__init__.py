"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the storefront engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - Actions apply all their effects or none
2. non_negative_balance.py - No wallet ever goes below zero
3. deposit_transitions.py - PENDING is left exactly once; credits happen once
4. entitlement_uniqueness.py - At most one record per (user, lesson)
5. canonicalization.py - Fingerprints and snapshots are representation-independent

These tests use hypothesis for property-based testing.
"""
