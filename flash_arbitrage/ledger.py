"""
Append-only transaction ledger.

One entry per execution attempt (settled, failed, or rejected before
submission). Entries are immutable, never edited or removed, and read back
newest first. Appends are atomic with respect to each other; an optional
JSONL journal mirrors every append to disk.
"""

import logging
import threading
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .interfaces import SystemTimeProvider, TimeProvider
from .types import ExecutionResult, ExecutionState, LedgerEntry, Opportunity
from .utils import safe_json_dump, timestamp_to_iso

logger = logging.getLogger(__name__)


class TransactionLedger:
    def __init__(
        self,
        journal_path: Optional[Union[str, Path]] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.time_provider = time_provider or SystemTimeProvider()
        self._entries: List[LedgerEntry] = []
        self._lock = threading.Lock()
        self.journal_path = Path(journal_path) if journal_path else None
        if self.journal_path:
            self.journal_path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, opportunity: Opportunity, result: ExecutionResult) -> LedgerEntry:
        """Record one execution attempt and return the new entry."""
        with self._lock:
            entry = LedgerEntry(
                sequence=len(self._entries) + 1,
                recorded_at=self.time_provider.current_timestamp(),
                opportunity=opportunity,
                result=result,
            )
            self._entries.append(entry)
            if self.journal_path:
                self._write_journal(entry)

        logger.info(
            f"LEDGER_APPEND: {{'sequence': {entry.sequence}, "
            f"'opportunity_id': '{opportunity.id}', 'state': '{result.state.value}', "
            f"'tx_ref': '{result.tx_ref}', 'realized_profit': '{result.realized_profit}'}}"
        )
        return entry

    def _write_journal(self, entry: LedgerEntry) -> None:
        record = entry.to_dict()
        record["recorded_at_iso"] = timestamp_to_iso(entry.recorded_at)
        try:
            with open(self.journal_path, "a") as f:
                f.write(safe_json_dump(record))
                f.write("\n")
        except OSError as e:
            # the in-memory ledger stays authoritative
            logger.error(f"Failed to write ledger journal {self.journal_path}: {e}")

    def entries(self) -> List[LedgerEntry]:
        """All entries, newest first."""
        with self._lock:
            return list(reversed(self._entries))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def summary(self) -> Dict[str, Any]:
        """Aggregate counts and realized profit across all entries."""
        entries = self.entries()
        by_state = {state.value: 0 for state in ExecutionState if state.is_terminal}
        total_profit = Decimal("0")
        total_gas = 0
        for entry in entries:
            by_state[entry.status.value] = by_state.get(entry.status.value, 0) + 1
            total_profit += entry.realized_profit
            total_gas += entry.result.actual_gas_used

        settled = by_state[ExecutionState.SETTLED.value]
        submitted = settled + by_state[ExecutionState.FAILED.value]
        return {
            "total_entries": len(entries),
            "by_state": by_state,
            "success_rate": (settled / submitted) if submitted else 0.0,
            "total_realized_profit": total_profit,
            "total_gas_used": total_gas,
        }
