"""
Managers package for worksnap.
"""

from .base import BaseManager, ManagerState, ManagerError, HealthStatus
from .git import GitBinaryManager, GitBinaryInfo

__all__ = [
    # Base
    'BaseManager',
    'ManagerError',
    'ManagerState',
    'HealthStatus',

    # Git
    'GitBinaryManager',
    'GitBinaryInfo',
]
