"""Invite code generation for families."""

import re
import secrets
from typing import Callable

from utils.errors import InviteCodeExhausted
from utils.logging import setup_logger

logger = setup_logger(__name__)

# Excludes 0/O, 1/I/L so codes survive being read aloud or handwritten.
INVITE_CODE_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"
INVITE_CODE_LENGTH = 8
MAX_INVITE_CODE_ATTEMPTS = 10

_INVITE_CODE_PATTERN = re.compile(
    rf"^[{INVITE_CODE_ALPHABET}]{{{INVITE_CODE_LENGTH}}}$"
)


def generate_invite_code() -> str:
    return "".join(
        secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH)
    )


def normalize_invite_code(code: str) -> str:
    return code.strip().upper()


def is_valid_invite_code_format(code: str) -> bool:
    return bool(_INVITE_CODE_PATTERN.match(code))


def generate_unique_invite_code(
    exists: Callable[[str], bool],
    generate: Callable[[], str] = generate_invite_code,
    max_attempts: int = MAX_INVITE_CODE_ATTEMPTS,
) -> str:
    """
    Draw invite codes until one is not already in use.

    Args:
        exists: Returns True when a code is already taken
        generate: Source of candidate codes
        max_attempts: Number of candidates to try

    Returns:
        A code for which exists() returned False

    Raises:
        InviteCodeExhausted: If every candidate collided
    """
    for attempt in range(1, max_attempts + 1):
        code = generate()
        if not exists(code):
            return code
        logger.warning(
            "Invite code collision", extra={"attempt": attempt, "max_attempts": max_attempts}
        )

    logger.error("Invite code generation exhausted", extra={"max_attempts": max_attempts})
    raise InviteCodeExhausted()
