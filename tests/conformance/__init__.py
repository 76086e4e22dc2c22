"""
Conformance Test Suite

Property-based checks of the guarantees every vending machine must keep,
whatever sequence of operations it is driven through.

The tests are organized by guarantee:
1. change_correctness.py - Change is exact, held, and found whenever it exists
2. conservation.py - The till holds exactly what deposits and sales imply
3. refund_guarantees.py - Every attempt dispenses or refunds every coin

These tests use hypothesis for property-based testing.
"""
