"""
SLA Tracking Module
===================

Bounded Context for service-level agreement tracking on client requests.

Responsibilities:
- Count business hours across weekends and off-hours (BusinessCalendar)
- Classify urgency from hours remaining (none / yellow / red)
- Drive the SLA record lifecycle: start, pause, resume, complete
- Announce each warning level once through the notify sink (Slack)
- Expose SLA status and adherence metrics over HTTP
"""

__version__ = "1.0.0"
