"""
Distribution Strategy

Design Decision: Chunk Placement
================================

Options Considered:
1. Round-robin over a flat (provider, account) pool
   - Perfectly even, reproducible, trivial to reason about
2. Random placement
   - Even on average, needs a seed to stay reproducible
3. Size-based (fill the emptiest destination first)
   - Needs live quota information from every account
4. Consistent hashing
   - Stable under pool changes, uneven for small pools

Decision: Round-robin by default
- Replica i of chunk c goes to pool[(c + i) % len(pool)]
- Over any len(pool) consecutive chunks each destination is used exactly
  once per replication slot
- The pool is an explicit ordered list, so placement never depends on
  dictionary iteration order
- Random placement uses a per-index seeded generator, so it is reproducible
  too; size-based falls back to round-robin

Placement is a pure function of the chunk index: reassembly could recompute
where a chunk should live, though the manifest's recorded destinations are
authoritative.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

from ..backends.base import Provider
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class LoadBalancing(str, Enum):
    ROUND_ROBIN = 'round_robin'
    RANDOM = 'random'
    SIZE_BASED = 'size_based'


@dataclass(frozen=True)
class Target:
    """A destination a chunk can be placed on: one account of one provider."""
    provider: Provider
    account: str

    @property
    def is_local_only(self) -> bool:
        return self.provider is Provider.LOCAL

    def __str__(self) -> str:
        return f"{self.provider.value}/{self.account}" if self.account else self.provider.value


# Returned for an empty pool: chunks stay in local storage
LOCAL_ONLY = Target(Provider.LOCAL, "")


class DistributionStrategy:
    """
    Maps a chunk index to the ordered list of targets for its replicas.

    Stateless across calls: the same pool, replication count and policy
    always give the same placement.
    """

    def __init__(self, pool: Sequence[Target], replication_count: int = 1,
                 load_balancing: LoadBalancing = LoadBalancing.ROUND_ROBIN,
                 seed: int = 0):
        if replication_count < 1:
            raise ConfigurationError(
                f"Replication count must be at least 1, got {replication_count}"
            )
        try:
            self.load_balancing = LoadBalancing(load_balancing)
        except ValueError as e:
            raise ConfigurationError(f"Invalid load balancing strategy: {load_balancing}") from e

        self.pool: List[Target] = list(pool)
        self.replication_count = replication_count
        self.seed = seed

        if self.pool and replication_count > len(self.pool):
            logger.warning(f"Replication count {replication_count} exceeds pool size "
                           f"{len(self.pool)}; some chunks will map to the same target twice")

    @property
    def pool_size(self) -> int:
        return len(self.pool)

    def destinations_for(self, chunk_index: int) -> List[Target]:
        """
        Targets for one chunk, one per replica.

        Returns:
            List of length replication_count, or [LOCAL_ONLY] for an empty pool
        """
        if not self.pool:
            return [LOCAL_ONLY]

        if self.load_balancing is LoadBalancing.RANDOM:
            return self._random(chunk_index)

        if self.load_balancing is LoadBalancing.SIZE_BASED:
            logger.debug("size_based placement not implemented, using round_robin")

        return self._round_robin(chunk_index)

    def _round_robin(self, chunk_index: int) -> List[Target]:
        size = len(self.pool)
        return [self.pool[(chunk_index + i) % size] for i in range(self.replication_count)]

    def _random(self, chunk_index: int) -> List[Target]:
        rng = random.Random(self.seed ^ chunk_index)
        if self.replication_count <= len(self.pool):
            return rng.sample(self.pool, self.replication_count)
        return [rng.choice(self.pool) for _ in range(self.replication_count)]
