# tools/__init__.py
"""
Command-line tools.

Modules:
- supervisor_manager: runs the supervisor against the simulated controller
"""
