"""
TaskFlow: task/project management core.

Subpackages:
- tasks: task models, SQLite store, classifier (stats/urgency/order), actions
- notifications: notification models, SQLite store, rule engine, sweeper
- core: ports (Protocols), clock, application state
- llm: OpenAI-compatible task analyzer + offline fallback
- cli / connectors: composition root, slash commands, console REPL
"""

__version__ = "0.1.0"
