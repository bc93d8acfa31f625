"""Per-session operator workspace: selected tab, selected vendor and the in-flight batch.

State lives in process memory only and is dropped on logout or restart.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field

from market_pay.services.batch_service import PaymentBatch

TABS = ('payment', 'vendors', 'transactions', 'summary', 'requests')
DEFAULT_TAB = 'payment'


@dataclass
class OperatorState:
    active_tab: str = DEFAULT_TAB
    selected_vendor_id: uuid.UUID | None = None
    batch: PaymentBatch = field(default_factory=PaymentBatch)

    def select_tab(self, tab: str | None) -> str:
        if tab in TABS:
            self.active_tab = tab
        elif tab is not None:
            self.active_tab = DEFAULT_TAB
        return self.active_tab

    def select_vendor(self, vendor_id: uuid.UUID | None) -> None:
        self.selected_vendor_id = vendor_id


class OperatorStateRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, OperatorState] = {}

    def get(self, session_token: str) -> OperatorState:
        with self._lock:
            state = self._states.get(session_token)
            if state is None:
                state = OperatorState()
                self._states[session_token] = state
            return state

    def discard(self, session_token: str) -> None:
        with self._lock:
            self._states.pop(session_token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


operator_states = OperatorStateRegistry()
