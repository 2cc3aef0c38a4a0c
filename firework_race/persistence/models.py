"""Database models for durable game statistics."""

from sqlmodel import Field, SQLModel


class StatsRow(SQLModel, table=True):
    """
    Single-row table with the round counter and lifetime payouts.
    """

    __tablename__ = "stats"  # pyright: ignore[reportAssignmentType, reportUnannotatedClassAttribute]

    id: int = Field(default=1, primary_key=True)

    # Number the next started round will carry
    next_round: int = 1
    total_distributed: float = 0.0


class WinnerRow(SQLModel, table=True):
    """
    One entry of the bounded winner history.
    Insertion order (`id`) is recency order.
    """

    __tablename__ = "winners"  # pyright: ignore[reportAssignmentType, reportUnannotatedClassAttribute]

    id: int | None = Field(default=None, primary_key=True)

    round: int
    handle: str
    address: str
    reward: float
    height_m: int
    declared_at: float

    # NULL while the transfer is unresolved
    paid: bool | None = None
