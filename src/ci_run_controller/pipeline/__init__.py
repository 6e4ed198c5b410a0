"""Run controller components.

- Settings loaded from .env
- Structured logging
- The workflow definition and trigger policy
- The run controller, its state machine and stores
- A small CLI surface
"""
