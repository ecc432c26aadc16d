from typing import Tuple


def sorted_pair(user_a: str, user_b: str) -> Tuple[str, str]:
    """Canonical ordering (must match the `user_id1 < user_id2` CHECK constraint)."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


def pair_id(user_a: str, user_b: str) -> str:
    """
    Deterministic id for the unordered pair {user_a, user_b}.

    Used as the primary key of both the connection request and the
    conversation, so "Connect" clicks from either side land on one document.
    """
    low, high = sorted_pair(user_a, user_b)
    return f"{low}_{high}"
