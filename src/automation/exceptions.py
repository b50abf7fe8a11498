"""
Automation Exceptions

Error taxonomy for scheduling and run coordination.
"""

from typing import Optional


class AutomationError(Exception):
    """Base class for automation errors"""


class InvalidTimezone(AutomationError, ValueError):
    """Raised for an unrecognized IANA zone identifier"""

    def __init__(self, zone: str):
        self.zone = zone
        super().__init__(f"Unknown timezone: {zone!r}")


class ChannelNotFound(AutomationError):
    """Raised when a channel id does not exist"""

    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        super().__init__(f"Channel not found: {channel_id}")


class AutomationDisabled(AutomationError):
    """Raised when a manual run targets a channel with automation turned off"""

    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        super().__init__(f"Automation is disabled for channel {channel_id}")


class ConcurrencyConflict(AutomationError):
    """The channel run lock is already held, or a compare-and-set lost the race"""

    def __init__(self, channel_id: str, message: Optional[str] = None):
        self.channel_id = channel_id
        super().__init__(message or f"Automation is already running for channel {channel_id}")


class CollaboratorFailure(AutomationError):
    """A pipeline collaborator failed; always tagged with the step it failed in"""

    def __init__(self, step, cause: BaseException):
        self.step = step
        self.cause = cause
        step_name = getattr(step, "value", step)
        super().__init__(f"{step_name} failed: {cause}")


class RunFailed(AutomationError):
    """A manually triggered run did not produce a job"""

    def __init__(self, result):
        self.result = result
        super().__init__(result.error or "Automation run failed")


class CapacityReached(AutomationError):
    """A manual run was skipped because the channel is at its active-job ceiling"""

    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        super().__init__(f"Active job limit reached for channel {channel_id}")
