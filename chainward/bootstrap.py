"""
Composition root.

Builds the ledger, verifier, policy store and retention engine once, from
one configuration, so the host process can hand them to whatever needs them.
"""

from dataclasses import dataclass
from typing import Optional

from .audit.ledger import Ledger
from .audit.segments import Clock
from .audit.verifier import IntegrityVerifier
from .core.config import ChainwardConfig
from .retention.engine import RetentionEngine
from .retention.locations import DirectoryLocationResolver, ItemClassifier, LocationResolver
from .retention.store import RetentionPolicyStore, RetentionRunLog


@dataclass
class Components:
    config: ChainwardConfig
    ledger: Ledger
    verifier: IntegrityVerifier
    policy_store: RetentionPolicyStore
    run_log: RetentionRunLog
    engine: RetentionEngine


def build_components(
    config: Optional[ChainwardConfig] = None,
    resolver: Optional[LocationResolver] = None,
    classifier: Optional[ItemClassifier] = None,
    clock: Optional[Clock] = None,
) -> Components:
    """Wire every component from one configuration.

    Raises:
        LedgerWriteError: the ledger directory cannot be created
    """
    config = config or ChainwardConfig.from_env()

    ledger = Ledger.from_config(config, clock=clock)
    policy_store = RetentionPolicyStore(config.policies_file)
    run_log = RetentionRunLog(config.last_run_file)
    engine = RetentionEngine(
        policy_store=policy_store,
        run_log=run_log,
        ledger=ledger,
        resolver=resolver or DirectoryLocationResolver(config.base_dir),
        archive_root=config.archive_dir,
        classifier=classifier,
        clock=clock,
    )

    return Components(
        config=config,
        ledger=ledger,
        verifier=IntegrityVerifier(ledger.store),
        policy_store=policy_store,
        run_log=run_log,
        engine=engine,
    )
