"""Human review exceptions"""


class ReviewError(Exception):
    """Raised for review requests that cannot be applied at all"""
    pass
