"""
Benchmark protocol: roles, wave scheduling and the run controller.
"""

from .wave_scheduler import WaveScheduler, WaveOutcome, wave_of, is_entitled, partition, start_delay
from .roles import Role, ProducerRole, ConsumerRole, create_role
from .run_controller import RunController

__all__ = [
    'WaveScheduler',
    'WaveOutcome',
    'wave_of',
    'is_entitled',
    'partition',
    'start_delay',
    'Role',
    'ProducerRole',
    'ConsumerRole',
    'create_role',
    'RunController',
]
