"""Reusable patterns shared by the rental lifecycle engine.

Each module is a self-contained pattern: a pure-function rules engine
with a severity-partitioning validator, and enum-based transition tables
for workflow state machines.
"""
