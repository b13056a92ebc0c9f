"""Matching job exceptions"""


class JobError(Exception):
    """Base exception for job operations"""
    pass


class JobNotFoundError(JobError):
    pass


class InvalidJobTransitionError(JobError):
    def __init__(self, from_status, to_status):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid job transition: {from_status} -> {to_status}")
