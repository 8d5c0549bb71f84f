"""TaskHub background tasks."""

from taskhub.tasks.sweep import start_overdue_sweep, stop_overdue_sweep

__all__ = ["start_overdue_sweep", "stop_overdue_sweep"]
