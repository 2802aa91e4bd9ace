"""Pool accounting and settlement state machine."""

from poolbet.ledger.claims import ClaimLedger
from poolbet.ledger.config import LedgerConfig
from poolbet.ledger.custody import Custody, InMemoryCustody
from poolbet.ledger.engine import SettlementLedger
from poolbet.ledger.fees import FeePolicy
from poolbet.ledger.notifications import Notifier
from poolbet.ledger.pool import PoolLedger
from poolbet.ledger.settlement import SettlementBasis, SettlementEngine, SettlementKind
from poolbet.ledger.state_machine import MatchStateMachine

__all__ = [
    "SettlementLedger",
    "LedgerConfig",
    "PoolLedger",
    "FeePolicy",
    "SettlementEngine",
    "SettlementBasis",
    "SettlementKind",
    "MatchStateMachine",
    "ClaimLedger",
    "Custody",
    "InMemoryCustody",
    "Notifier",
]
