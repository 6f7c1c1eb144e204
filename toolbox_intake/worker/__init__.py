"""
Standalone conversion worker.
"""

from .loop import WorkerLoop, run_worker

__all__ = ["WorkerLoop", "run_worker"]
