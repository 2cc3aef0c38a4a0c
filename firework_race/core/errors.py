"""Exception hierarchy shared by the engine and its collaborators."""


class FireworkRaceError(Exception):
    """Base class for all firework race errors."""


class RosterUnavailable(FireworkRaceError):
    """The holder source could not supply a usable roster."""


class PaymentError(FireworkRaceError):
    """A reward claim or transfer failed."""

