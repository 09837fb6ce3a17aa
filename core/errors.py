"""Error types shared by the game core, the poller and the transports."""

from __future__ import annotations

from typing import Optional


class GameError(Exception):
    """An error whose message is safe to show to the player."""

    default_message = "Sorry, something went wrong. Please try again!"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(GameError):
    default_message = "Invalid command arguments."


class NotFoundError(GameError):
    default_message = "Not found."


class UnknownCreature(NotFoundError):
    def __init__(self, name: str, available: Optional[list] = None) -> None:
        self.name = name
        message = f"Invalid creature: {name}."
        if available:
            message += f" Available creatures: {', '.join(available)}"
        super().__init__(message)


class CreatureNotFound(NotFoundError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Creature {name} not found")


class ConflictError(GameError):
    default_message = "That request conflicts with an earlier one."


class AlreadyUsedReference(ConflictError):
    default_message = "This transaction has already been used for a purchase!"

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__()


class StateError(GameError):
    default_message = "That isn't possible right now."


class NoActiveBattle(StateError):
    default_message = "You haven't started a battle yet! Tweet 'battle' to begin!"


class OpponentStateLost(StateError):
    default_message = (
        "Sorry, I lost track of our battle. Let's start a new one! Tweet 'battle' to begin!"
    )


class NotOwned(StateError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"You don't own {name}! Use 'list' to see your creatures "
            "or just 'battle' for a random one."
        )


class PaymentRejected(GameError):
    NOT_FOUND = "not_found"
    NOT_CONFIRMED = "not_confirmed"
    FAILED = "failed"
    WRONG_DESTINATION = "wrong_destination"
    INSUFFICIENT_AMOUNT = "insufficient_amount"

    _MESSAGES = {
        NOT_FOUND: "Transaction not found on the Base network.",
        NOT_CONFIRMED: "Please wait for at least 1 confirmation on the Base network.",
        FAILED: "Transaction failed on the Base network.",
        WRONG_DESTINATION: "Transaction was not sent to the correct wallet address.",
        INSUFFICIENT_AMOUNT: "Insufficient payment.",
    }

    def __init__(self, reason: str, detail: Optional[str] = None) -> None:
        self.reason = reason
        message = self._MESSAGES.get(reason, "Payment could not be verified.")
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)


class TransientProviderError(Exception):
    """Network or provider hiccup; retried, never shown verbatim to players."""


class RateLimited(TransientProviderError):
    def __init__(self, reset_at: Optional[float] = None, message: str = "rate limited") -> None:
        self.reset_at = reset_at
        super().__init__(message)


class FatalStartupError(Exception):
    """Configuration is missing; the process cannot start."""
