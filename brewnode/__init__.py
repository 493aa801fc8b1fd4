# brewnode/__init__.py
"""
Supervisory client for a brewing rig controller.

Packages:
- telemetry: raw payload records and the normalizer
- equipment: the equipment registry (names, aliases, command routes)
- control: intents, the transition reconciler and the command dispatcher
- state: the supervisor's atomically swapped frame
- supervisor: polling loop, operator API and status summary
- transport: controller transport contract and simulated controller
"""

__version__ = "0.1.0"
