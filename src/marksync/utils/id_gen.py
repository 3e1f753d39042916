"""Random sync ID generation."""

import secrets

ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
DEFAULT_ID_LENGTH = 32


class RandomnessUnavailableError(Exception):
    """The operating system could not supply secure random bytes."""

    pass


def generate_sync_id(length: int = DEFAULT_ID_LENGTH) -> str:
    """Generate a random lowercase alphanumeric sync ID.

    Sync IDs double as access credentials, so every character comes from the
    OS CSPRNG via ``secrets``.

    Args:
        length: Number of characters

    Returns:
        ID string of exactly ``length`` characters

    Raises:
        ValueError: If length is not positive
        RandomnessUnavailableError: If the randomness source fails
    """
    if length <= 0:
        raise ValueError(f"ID length must be positive, got {length}")

    try:
        return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))
    except (OSError, NotImplementedError) as e:
        raise RandomnessUnavailableError(f"Secure random source unavailable: {e}") from e
