"""
Utility modules for tagcrawl
"""

from .logging_config import (
    setup_logging,
    get_contextual_logger,
    log_api_request,
    log_traversal_progress,
    log_apply_progress,
    init_from_environment
)

__all__ = [
    'setup_logging',
    'get_contextual_logger',
    'log_api_request',
    'log_traversal_progress',
    'log_apply_progress',
    'init_from_environment'
]
