"""
Process-wide test context and immutable test parameters.
"""

import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from common.deadline import Deadline
from common.errors import ConfigurationError
from configuration import (
    RUN_COUNT,
    RUN_TIMEOUT_SECONDS,
    BENCHMARK_TIMEOUT_SECONDS,
    NUM_WAVES,
    REQUEST_STAGGER_SECONDS,
    MAX_CONNECTION_RATE,
    TCP_ENABLED,
    HEARTBEAT_INTERVAL_SECONDS,
    FETCH_TIMEOUT_FRACTION,
)

logger = logging.getLogger(__name__)

PEERS_TOPIC = "peers"


class NodeRole(Enum):
    PRODUCER = "seed"
    CONSUMER = "leech"
    PASSIVE = "passive"

    @classmethod
    def parse(cls, value: str) -> "NodeRole":
        value = value.strip().lower()
        aliases = {"producer": cls.PRODUCER, "consumer": cls.CONSUMER}
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(f"Unknown node role: {value}") from None

    def __str__(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class TestParameters:
    """Benchmark parameters, resolved once before the first run."""

    run_count: int = RUN_COUNT
    run_timeout: float = RUN_TIMEOUT_SECONDS
    timeout: float = BENCHMARK_TIMEOUT_SECONDS
    num_waves: int = NUM_WAVES
    request_stagger: float = REQUEST_STAGGER_SECONDS
    max_connection_rate: int = MAX_CONNECTION_RATE
    tcp_enabled: bool = TCP_ENABLED
    heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS

    __test__ = False  # not a pytest test class

    @classmethod
    def from_configuration(cls) -> "TestParameters":
        """Parameters from configuration.py and its environment overrides, validated."""
        return cls(
            run_count=RUN_COUNT,
            run_timeout=RUN_TIMEOUT_SECONDS,
            timeout=BENCHMARK_TIMEOUT_SECONDS,
            num_waves=NUM_WAVES,
            request_stagger=REQUEST_STAGGER_SECONDS,
            max_connection_rate=MAX_CONNECTION_RATE,
            tcp_enabled=TCP_ENABLED,
            heartbeat_interval=HEARTBEAT_INTERVAL_SECONDS,
        ).validate()

    def validate(self) -> "TestParameters":
        """Check parameter ranges.

        Returns:
            self, so construction and validation can be chained

        Raises:
            ConfigurationError: if any parameter is out of range
        """
        if self.run_count < 1:
            raise ConfigurationError(f"run_count must be >= 1, got {self.run_count}")
        if self.run_timeout <= 0:
            raise ConfigurationError(f"run_timeout must be > 0, got {self.run_timeout}")
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be > 0, got {self.timeout}")
        if self.num_waves < 1:
            raise ConfigurationError(f"num_waves must be >= 1, got {self.num_waves}")
        if self.request_stagger < 0:
            raise ConfigurationError(f"request_stagger must be >= 0, got {self.request_stagger}")
        if not 0 <= self.max_connection_rate <= 100:
            raise ConfigurationError(
                f"max_connection_rate must be a percentage in 0..100, got {self.max_connection_rate}"
            )
        if self.heartbeat_interval < 0:
            raise ConfigurationError(f"heartbeat_interval must be >= 0, got {self.heartbeat_interval}")
        return self

    @property
    def fetch_timeout(self) -> float:
        return self.run_timeout * FETCH_TIMEOUT_FRACTION


@dataclass
class PeerInfo:
    """Directory entry advertised by every node at startup."""

    seq: int
    role: NodeRole
    tpindex: int
    group_seq: int = 0
    host: str = ""
    port: int = 0

    @property
    def address(self) -> Optional[str]:
        if not self.host or not self.port:
            return None
        return f"{self.host}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['role'] = self.role.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PeerInfo":
        data = dict(data)
        data['role'] = NodeRole(data['role'])
        return cls(**data)


@dataclass
class TestContext:
    """Everything a node knows about itself and the fleet.

    Built once by ``initialize_context`` and owned by the run controller.
    """

    role: NodeRole
    seq: int
    group_seq: int
    tpindex: int
    instance_count: int
    sync: Any
    provider: Any
    peers: List[PeerInfo] = field(default_factory=list)
    latency_ms: int = 0
    bandwidth_mb: int = 0
    work_dir: str = ""
    host: str = ""
    port: int = 0

    __test__ = False

    @property
    def self_info(self) -> PeerInfo:
        return PeerInfo(
            seq=self.seq, role=self.role, tpindex=self.tpindex,
            group_seq=self.group_seq, host=self.host, port=self.port,
        )

    def peers_with_role(self, role: NodeRole) -> List[PeerInfo]:
        return [p for p in self.peers if p.role == role]

    def other_peers(self) -> List[PeerInfo]:
        return [p for p in self.peers if p.seq != self.seq]

    @property
    def consumer_count(self) -> int:
        return len(self.peers_with_role(NodeRole.CONSUMER))

    @property
    def producer_count(self) -> int:
        return len(self.peers_with_role(NodeRole.PRODUCER))


async def initialize_context(
    sync,
    provider,
    role: NodeRole,
    instance_count: int,
    deadline: Deadline,
    seq: Optional[int] = None,
    tpindex: Optional[int] = None,
    group_seq: int = 0,
    latency_ms: int = 0,
    bandwidth_mb: int = 0,
    work_dir: str = "",
    host: str = "",
    port: int = 0,
) -> TestContext:
    """Resolve this node's identity and the peer directory through the sync service.

    ``seq`` and ``tpindex`` are taken from the arguments when given, otherwise
    from the node's arrival order on the ``node-seq`` and ``<role>-index``
    states. Every node then publishes its PeerInfo and waits until all
    ``instance_count`` entries are visible.
    """
    if instance_count < 1:
        raise ConfigurationError(f"instance_count must be >= 1, got {instance_count}")

    if seq is None:
        seq = await sync.signal_entry("node-seq")
    if tpindex is None:
        tpindex = await sync.signal_entry(f"{role.value}-index") - 1
    if seq < 1:
        raise ConfigurationError(f"seq must be >= 1, got {seq}")
    if tpindex < 0:
        raise ConfigurationError(f"tpindex must be >= 0, got {tpindex}")

    ctx = TestContext(
        role=role, seq=seq, group_seq=group_seq, tpindex=tpindex,
        instance_count=instance_count, sync=sync, provider=provider,
        latency_ms=latency_ms, bandwidth_mb=bandwidth_mb, work_dir=work_dir,
        host=host, port=port,
    )

    await sync.publish(PEERS_TOPIC, ctx.self_info.to_dict())
    entries = await sync.subscribe(PEERS_TOPIC, instance_count, deadline.remaining())
    ctx.peers = sorted((PeerInfo.from_dict(e) for e in entries), key=lambda p: p.seq)

    seqs = [p.seq for p in ctx.peers]
    if len(set(seqs)) != len(seqs):
        raise ConfigurationError(f"Duplicate node sequence numbers in peer directory: {seqs}")

    logger.info(
        f"Node initialized: role={role}, seq={seq}, tpindex={tpindex}, "
        f"{ctx.producer_count} producers, {ctx.consumer_count} consumers, "
        f"{len(ctx.peers)} nodes total"
    )
    return ctx
