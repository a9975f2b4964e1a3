"""
=============================================================================
PENDING REQUEST TABLE
=============================================================================

The correlation table between the engine threads that accept requests and
the handler threads that answer them.

    request_id ──► PendingRequest(completion, body, method, accepted_at)

=============================================================================
EXACTLY-ONCE
=============================================================================

The completion stored here may be invoked at most once. The table
guarantees it by removal-on-complete under one lock:

    thread A: complete(id)          thread B: complete(id)
    ──────────────────────          ──────────────────────
    lock                            lock (waits)
      entry = pop(id)  ✓
    unlock
    entry.completion.fulfil()         entry = pop(id)  → None
                                    unlock
                                    DUPLICATE_COMPLETION, logged

Whoever pops the entry owns the completion; everyone else gets a logged
no-op. The same lock serializes put() and clear(), so a completion racing
a server stop either answers first or finds the table already empty.

=============================================================================
MISSES ARE NOT ERRORS
=============================================================================

A handler finishing after stop(), or after the engine timed the request
out, is expected. complete() never raises for a missing identity; it
returns a CompletionOutcome and logs a warning. A bounded memory of
recently retired identities tells the two kinds of miss apart:

    retired as COMPLETED          → DUPLICATE_COMPLETION
    retired as ABANDONED / never  → UNKNOWN_REQUEST

=============================================================================
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Protocol

from .errors import DuplicateIdentity
from .http import JSON_CONTENT_TYPE


logger = logging.getLogger(__name__)


class CompletionCapability(Protocol):
    """What the table needs from the engine: a one-shot fulfil()."""

    def fulfil(self, status: int, text_body: str, content_type: str) -> bool: ...


class CompletionOutcome(Enum):
    """Result of PendingRequestTable.complete()."""
    COMPLETED = "completed"
    DUPLICATE_COMPLETION = "duplicate_completion"
    UNKNOWN_REQUEST = "unknown_request"


class _Retired(Enum):
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass
class PendingRequest:
    """One accepted, not yet answered request."""

    request_id: str
    completion: CompletionCapability
    body: str = ""
    method: str = ""
    accepted_at: float = field(default_factory=time.time)


class PendingRequestTable:
    """
    request_id → PendingRequest, guarded by a single lock.

        table = PendingRequestTable()
        table.put(request_id, completion, body="...", method="POST")
        table.complete(request_id, 200, '{"ok":true}')   # COMPLETED
        table.complete(request_id, 200, '{"ok":true}')   # DUPLICATE_COMPLETION
        table.clear()                                    # on stop
    """

    def __init__(
        self,
        content_type: str = JSON_CONTENT_TYPE,
        retired_window: int = 4096
    ):
        """
        Args:
            content_type: Content-Type every completion is fulfilled with.
            retired_window: How many retired identities to remember for
                            telling duplicate completions from unknown ids.
        """
        self.content_type = content_type
        self.retired_window = retired_window

        self._pending: Dict[str, PendingRequest] = {}
        self._retired: "OrderedDict[str, _Retired]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._pending

    def get(self, request_id: str) -> Optional[PendingRequest]:
        with self._lock:
            return self._pending.get(request_id)

    def put(
        self,
        request_id: str,
        completion: CompletionCapability,
        body: str = "",
        method: str = ""
    ) -> PendingRequest:
        """
        Register a freshly accepted request.

        Raises:
            DuplicateIdentity: The identity is already pending.
        """
        entry = PendingRequest(
            request_id=request_id,
            completion=completion,
            body=body,
            method=method,
        )

        with self._lock:
            if request_id in self._pending:
                raise DuplicateIdentity(request_id)
            self._pending[request_id] = entry

        return entry

    def complete(self, request_id: str, status: int, data: str) -> CompletionOutcome:
        """
        Answer a pending request, exactly once.

        The entry is removed under the lock before its completion is
        invoked, so concurrent calls for the same identity cannot both
        reach the engine.

        Returns:
            COMPLETED, or DUPLICATE_COMPLETION / UNKNOWN_REQUEST for a
            miss (logged, never raised).
        """
        with self._lock:
            entry = self._pending.pop(request_id, None)
            if entry is None:
                previous = self._retired.get(request_id)
            else:
                self._retire(request_id, _Retired.COMPLETED)

        if entry is None:
            if previous is _Retired.COMPLETED:
                logger.warning(
                    f"A completion is attempted to be called twice for request {request_id}"
                )
                return CompletionOutcome.DUPLICATE_COMPLETION

            logger.warning(f"No pending request {request_id}; response discarded")
            return CompletionOutcome.UNKNOWN_REQUEST

        delivered = entry.completion.fulfil(status, data, self.content_type)
        if not delivered:
            # engine let go of the connection between our pop and fulfil
            logger.warning(f"Connection for request {request_id} already released")
            return CompletionOutcome.UNKNOWN_REQUEST

        logger.debug(
            f"Completed {entry.method} {request_id} with {status} "
            f"after {(time.time() - entry.accepted_at) * 1000:.1f}ms"
        )
        return CompletionOutcome.COMPLETED

    def discard(self, request_id: str) -> bool:
        """
        Forget one request without answering it.

        Returns:
            True if it was pending.
        """
        with self._lock:
            entry = self._pending.pop(request_id, None)
            if entry is not None:
                self._retire(request_id, _Retired.ABANDONED)

        if entry is not None:
            logger.debug(f"Discarded pending request {request_id}")
        return entry is not None

    def clear(self) -> int:
        """
        Drop every pending request without invoking its completion.

        Returns:
            How many requests were abandoned.
        """
        with self._lock:
            abandoned = list(self._pending)
            self._pending.clear()
            for request_id in abandoned:
                self._retire(request_id, _Retired.ABANDONED)

        if abandoned:
            logger.info(f"Abandoned {len(abandoned)} pending requests")
        return len(abandoned)

    def _retire(self, request_id: str, reason: _Retired):
        # caller holds self._lock
        self._retired[request_id] = reason
        self._retired.move_to_end(request_id)
        while len(self._retired) > self.retired_window:
            self._retired.popitem(last=False)
