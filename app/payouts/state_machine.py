# app/payouts/state_machine.py

class InvalidTransition(Exception):
    pass


ALLOWED = {
    "pending": {"processing", "failed"},  # pending->failed only for setup errors
    "processing": {"processing", "completed", "failed"},  # processing->processing: unknown outcome held
    "completed": set(),
    "failed": {"pending"},  # retry scheduling or manual requeue
}


def assert_transition(old: str, new: str) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition(f"Illegal payout transition: {old} -> {new}")


def assert_completed_invariant(new_status: str, external_reference: str | None) -> None:
    """
    Invariant: if payout is completed, it MUST have an external reference.
    """
    if new_status == "completed" and not external_reference:
        raise ValueError("Invariant violation: status=completed requires external_reference")


def can_retry(retry_count: int, max_retry_count: int) -> bool:
    return retry_count < max_retry_count
