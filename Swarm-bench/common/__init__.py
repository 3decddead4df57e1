"""
Common utilities for the swarm benchmark.
"""

from .phase_manager import PhaseManager
from .deadline import Deadline, DeadlineExceeded
from .context import NodeRole, PeerInfo, TestContext, TestParameters, initialize_context
from .files import FileUnderTest, load_test_files, generate_random_files

__all__ = [
    'PhaseManager',
    'Deadline',
    'DeadlineExceeded',
    'NodeRole',
    'PeerInfo',
    'TestContext',
    'TestParameters',
    'initialize_context',
    'FileUnderTest',
    'load_test_files',
    'generate_random_files',
]
