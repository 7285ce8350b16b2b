"""
Adaptive learning engine.

Drives the remote code analysis, aggregates weak areas, selects practice
problems and keeps growth scores. ``orchestrator`` ties the pieces together;
the other modules are usable on their own.
"""
