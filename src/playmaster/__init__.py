"""Declarative UI-test compiler and execution orchestrator.

The `playmaster` package turns YAML feature descriptions into integration
test suites for a target UI framework and drives their execution.

Key features:
- immutable, validated DSL model with namespaced and local variables;
- deterministic code generation of constants and test-suite artifacts;
- dependency verification through version-probe commands;
- lifecycle hooks scheduled around the whole run and around every case;
- local or remote (SSH channel) execution with a single run state machine.
"""
