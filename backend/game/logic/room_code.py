"""Room codes and the host identities derived from them."""

import random
import re

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no I, O, 0, 1
ROOM_CODE_LENGTH = 6
HOST_IDENTITY_PREFIX = "loto-"

_ROOM_CODE_PATTERN = re.compile(rf"^[{ROOM_CODE_ALPHABET}]{{{ROOM_CODE_LENGTH}}}$")


def generate_room_code(rng: random.Random) -> str:
    return "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_room_code(code: str) -> str:
    """Uppercase and strip user input; does not validate."""
    return code.strip().upper()


def is_valid_room_code(code: str) -> bool:
    return bool(_ROOM_CODE_PATTERN.match(code))


def host_identity(room_code: str) -> str:
    """Deterministic listening identity of the host for a room."""
    return f"{HOST_IDENTITY_PREFIX}{room_code}"
