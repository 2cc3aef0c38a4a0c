"""Persistence of round counter, lifetime payouts and winner history."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from firework_race.core.state import Holder, PersistentStats, WinnerRecord
from firework_race.persistence.models import StatsRow, WinnerRow

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

logger = logging.getLogger("firework_race.db")


class StatsStore:
    """
    Loads stats once at startup and overwrites them after every round.

    Failures are logged and never raised: a broken stats file must not stop
    the game loop.
    """

    def __init__(self, path: Path | str, retention: int = 20):
        self.path = Path(path)
        self.retention = retention
        self.path.parent.mkdir(parents=True, exist_ok=True)

        self.engine: Engine = create_engine(f"sqlite:///{self.path}")
        SQLModel.metadata.create_all(self.engine)

    def load(self) -> PersistentStats:
        """Return the saved stats, or fresh defaults if nothing was saved yet."""
        try:
            with Session(self.engine) as session:
                row = session.get(StatsRow, 1)
                winners = session.exec(select(WinnerRow).order_by(WinnerRow.id)).all()
        except SQLAlchemyError:
            logger.exception(f"Failed to load stats from {self.path}; starting fresh")
            return PersistentStats(retention=self.retention)

        if row is None:
            logger.info(f"No saved stats in {self.path}; starting at round 1")
            return PersistentStats(retention=self.retention)

        stats = PersistentStats(
            next_round=row.next_round,
            total_distributed=row.total_distributed,
            retention=self.retention,
            winners=[self._to_record(w) for w in winners],
        )
        logger.info(
            f"Loaded stats from {self.path}: next round {stats.next_round}, "
            f"{len(stats.winners)} winners, {stats.total_distributed:.4f} distributed",
        )
        return stats

    def save(self, stats: PersistentStats) -> bool:
        """Overwrite the stored stats in one transaction."""
        try:
            with Session(self.engine) as session:
                row = session.get(StatsRow, 1) or StatsRow(id=1)
                row.next_round = stats.next_round
                row.total_distributed = stats.total_distributed
                session.add(row)

                session.exec(delete(WinnerRow))
                for record in stats.winners:
                    session.add(self._to_row(record))
                session.commit()
        except SQLAlchemyError:
            logger.exception(f"Failed to save stats to {self.path}")
            return False
        return True

    def save_payout(self, record: WinnerRecord) -> bool:
        """Update only the `paid` flag of one stored winner; the round counter is left alone."""
        try:
            with Session(self.engine) as session:
                rows = session.exec(select(WinnerRow).where(WinnerRow.round == record.round)).all()
                for row in rows:
                    row.paid = record.paid
                    session.add(row)
                session.commit()
        except SQLAlchemyError:
            logger.exception(f"Failed to save payout of round {record.round} to {self.path}")
            return False
        if not rows:
            logger.warning(f"Round {record.round} is no longer in the stored history; payout not saved")
        return bool(rows)

    @staticmethod
    def _to_row(record: WinnerRecord) -> WinnerRow:
        return WinnerRow(
            round=record.round,
            handle=record.holder.handle,
            address=record.holder.address,
            reward=record.reward,
            height_m=record.height_m,
            declared_at=record.declared_at,
            paid=record.paid,
        )

    @staticmethod
    def _to_record(row: WinnerRow) -> WinnerRecord:
        return WinnerRecord(
            holder=Holder(handle=row.handle, address=row.address),
            round=row.round,
            reward=row.reward,
            height_m=row.height_m,
            declared_at=row.declared_at,
            paid=row.paid,
        )
