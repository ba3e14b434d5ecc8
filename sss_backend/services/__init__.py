"""
Service layer for the SSS backend.

This package holds the policy engine (pattern matching, scope resolution,
rule compilation and real-time URL decisions), activity categorisation
and the device command lifecycle.
"""
