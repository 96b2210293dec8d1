"""
Identity Host - identity-enabled web application for embedded control systems.

The host runtime calls ``ControlSystem.initialize_system()`` which must return
promptly. All real work happens on a single background orchestration unit:

    ┌────────────────┐     ┌──────────────────────────────────────────┐
    │  Host runtime  │────▶│        StartupOrchestrator (thread)      │
    │ (ControlSystem)│     └──────────────────────────────────────────┘
    └────────────────┘          │        │          │          │
                                ▼        ▼          ▼          ▼
                          ┌────────┐ ┌────────┐ ┌─────────┐ ┌─────────┐
                          │Provider│ │Address │ │ Service │ │ Schema  │
                          │ Binder │ │Resolver│ │Assembler│ │Migrator │
                          └────────┘ └────────┘ └────┬────┘ └────┬────┘
                                                     │           │
                                                     ▼           ▼
                                               ┌──────────┐ ┌─────────┐
                                               │ uvicorn  │ │ SQLite  │
                                               │ :7070    │ │ app.db  │
                                               └──────────┘ └─────────┘

Invariants:
    - The native SQLite provider is bound exactly once, before any connection
    - The listener binds to the address reported by the host platform
    - Migration runs at most once per process, before traffic is served
    - Nothing raised inside the orchestration unit reaches the host process

How to change safely:
    - Keep the startup order; each step depends on the previous one
    - Add migrations only at the end of the migration list
    - Never reuse or renumber a released schema version
"""

from ._version import __version__

__all__ = ["__version__"]
