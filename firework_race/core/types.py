from typing import Literal

Phase = Literal[
    "racing",
    "celebrating",
    "ended",
]

# What observers see before the first round has started
PhaseTag = Phase | Literal["idle"]

ClaimStatus = Literal[
    "idle",
    "claiming",
    "claimed",
    "failed",
]

EventName = Literal[
    "newRound",
    "gameState",
    "roundEnded",
    "winners",
]

WinReason = Literal[
    "finish",  # crossed the finish line
    "survivor",  # last racer still climbing
    "timeout",  # countdown reached zero
    "wipeout",  # everybody exploded in the same tick
]
