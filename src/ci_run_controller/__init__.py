"""CI run controller.

Decides, for every incoming trigger event, whether to start a new pipeline run
and which in-flight run of the same concurrency group it supersedes.

Provides:
- configuration loaded from `.env`
- structured logging
- a persisted run store and a small CLI/REST surface
"""

__version__ = "0.1.0"

from ci_run_controller.pipeline.config import ControllerSettings

__all__ = ["__version__", "ControllerSettings"]
