"""Test suite for the playmaster package.

This package contains unit and integration tests validating project
loading, reference resolution, code generation, hook scheduling and
the execution state machine.
"""
