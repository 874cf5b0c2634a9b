from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from config.settings import settings
from ledger.client import LedgerClient, LedgerError
from ledger.pacing import FixedDelayPacer
from metadata.formatter import format_for_ledger
from models.megadata import Module, Token
from ops.metrics import Timer

log = logging.getLogger("megadata.ledger.publisher")

PUBLISH_OK = "published"
PUBLISH_FAILED = "failed"
PUBLISH_INCONSISTENT = "ledger_inconsistent"


class LedgerInconsistency(Exception):
    """Items reached the ledger but the local status write failed ("created but not published")."""


@dataclass
class PublishOutcome:
    collection_id: int
    status: str
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ledger_written(self) -> int:
        return 0 if self.status == PUBLISH_FAILED else len(self.created) + len(self.updated)

    @property
    def published(self) -> int:
        return self.ledger_written if self.status == PUBLISH_OK else 0

    def raise_for_status(self) -> None:
        if self.status == PUBLISH_FAILED:
            raise LedgerError(self.error or "ledger_publish_failed")
        if self.status == PUBLISH_INCONSISTENT:
            raise LedgerInconsistency(self.error or "created_but_not_published")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection_id": self.collection_id,
            "status": self.status,
            "created": len(self.created),
            "updated": len(self.updated),
            "published": self.published,
            "error": self.error,
        }


class PublishPipeline:
    """Formats token data per module schemas and writes it to the ledger in one transaction."""

    def __init__(
        self,
        ledger: Optional[LedgerClient] = None,
        pacer: Optional[FixedDelayPacer] = None,
        mark_published: Optional[Callable[[int, List[str]], None]] = None,
    ):
        self.ledger = ledger or LedgerClient()
        self.pacer = pacer or FixedDelayPacer(settings.LEDGER_PROBE_DELAY_SECONDS)
        self.mark_published = mark_published

    def _split_by_existence(self, collection_id: int, tokens: Sequence[Token]) -> tuple[List[Token], List[Token]]:
        create: List[Token] = []
        update: List[Token] = []
        for t in self.pacer.iterate(tokens):
            if self.ledger.item_exists(collection_id, t.id):
                update.append(t)
            else:
                create.append(t)
        return create, update

    def publish_batch(
        self,
        collection_id: int,
        tokens: Sequence[Token],
        modules: Iterable[Module],
        on_published: Optional[Callable[[int, List[str]], None]] = None,
    ) -> PublishOutcome:
        t = Timer()
        modules = list(modules)
        if not tokens:
            return PublishOutcome(collection_id=collection_id, status=PUBLISH_OK)

        try:
            create, update = self._split_by_existence(collection_id, tokens)
            self.ledger.submit_items(
                collection_id,
                create=[{"id": x.id, "data": format_for_ledger(x.data, modules)} for x in create],
                update=[{"id": x.id, "data": format_for_ledger(x.data, modules)} for x in update],
            )
        except LedgerError as e:
            log.error(
                "publish_batch_failed",
                extra={"extra": {"collection_id": collection_id, "tokens": len(tokens), "message": str(e)}},
            )
            return PublishOutcome(collection_id=collection_id, status=PUBLISH_FAILED, error=str(e))

        outcome = PublishOutcome(
            collection_id=collection_id,
            status=PUBLISH_OK,
            created=[x.id for x in create],
            updated=[x.id for x in update],
        )

        mark = on_published or self.mark_published
        if mark is not None:
            try:
                mark(collection_id, outcome.created + outcome.updated)
            except Exception as e:
                # Ledger has the items; tokens stay pending and the sync worker re-sends them as updates.
                outcome.status = PUBLISH_INCONSISTENT
                outcome.error = f"status_update_failed: {type(e).__name__}: {e}"
                log.error(
                    "ledger_inconsistency",
                    extra={
                        "extra": {
                            "collection_id": collection_id,
                            "ledger_written": outcome.ledger_written,
                            "error_type": type(e).__name__,
                            "message": str(e),
                        }
                    },
                    exc_info=True,
                )

        log.info(
            "publish_batch_result",
            extra={"extra": {**outcome.to_dict(), "duration_ms": t.ms()}},
        )
        return outcome
