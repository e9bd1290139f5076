"""Background jobs"""

from .chest_jobs import ChestJobRunner, close_expired_openings, run_auto_mint

__all__ = ["ChestJobRunner", "close_expired_openings", "run_auto_mint"]
