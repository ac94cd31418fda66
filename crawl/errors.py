"""
Operation-level errors raised by the crawl and apply engines

Item-level repository errors live in cma.client; these are the conditions
that stop an operation as a whole.
"""


class ConfigurationError(Exception):
    """Raised when settings or inputs make an operation impossible"""
    pass


class NothingToApplyError(ConfigurationError):
    """Raised before any mutation when there are no target tags or no selection"""
    pass


class CrawlAbortedError(Exception):
    """Raised when a crawl hits a failure that affects every call, not one item"""
    pass
