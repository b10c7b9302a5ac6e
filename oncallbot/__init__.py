"""
oncallbot - keeps Slack user groups in step with PagerDuty on-call rosters
"""

__version__ = "0.1.0"
__logo__ = "📟"
