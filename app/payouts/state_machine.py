# app/payouts/state_machine.py
from app.errors import InvalidPayoutTransition


class InvalidTransition(InvalidPayoutTransition):
    pass


ALLOWED = {
    "pending": {"processing", "failed"},
    "processing": {"completed", "failed"},
    "completed": set(),
    "failed": set(),
}


def assert_transition(old: str, new: str) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition(f"Illegal payout transition: {old} -> {new}")


def assert_processing_invariant(new_status: str, transfer_id: str | None) -> None:
    """
    Invariant: a payout handed to the bank (processing) MUST carry a transfer_id.
    """
    if new_status == "processing" and not transfer_id:
        raise ValueError("Invariant violation: status=processing requires transfer_id")
