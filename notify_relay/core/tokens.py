import random
import time


TOKEN_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ-"
DEFAULT_TOKEN_LENGTH = 12


def generate_token(n: int = DEFAULT_TOKEN_LENGTH) -> str:
    """
    Generate a random trace token of exactly ``n`` characters.

    The source is reseeded from the clock on every call. Tokens tag queue
    records for log correlation and keep identical notifications from
    collapsing into one queue member; they are not guaranteed unique.
    """
    if n < 0:
        raise ValueError(f"Token length must not be negative, got {n}")
    rng = random.Random(time.time_ns())
    return "".join(rng.choice(TOKEN_ALPHABET) for _ in range(n))
