"""
torsnap scheduler module.

Periodic timer with a single-flight guard around the automation run.
"""

from torsnap.scheduler.runner import AutomationScheduler

__all__ = ["AutomationScheduler"]
