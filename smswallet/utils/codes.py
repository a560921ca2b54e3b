"""Single-use code generation for nominations, approvals and payments."""

import secrets
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class CodeGenerationError(Exception):
    """Raised when no unused code could be found within the attempt limit."""


def generate_code(length: int, alphabet: str) -> str:
    """Generate a random upper-case code."""
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_unique_code(
    is_taken: Callable[[str], bool],
    length: int,
    alphabet: str,
    max_attempts: int = 10,
    generator: Optional[Callable[[int, str], str]] = None,
) -> str:
    """
    Generate a code that ``is_taken`` reports as free.

    Args:
        is_taken: Returns True when the code collides with an existing one
        length: Code length
        alphabet: Characters to draw from
        max_attempts: Attempts before giving up
        generator: Code generator, defaults to ``generate_code``

    Returns:
        An unused code

    Raises:
        CodeGenerationError: If every attempt collided
    """
    generator = generator or generate_code
    for attempt in range(1, max_attempts + 1):
        code = generator(length, alphabet)
        if not is_taken(code):
            return code
        logger.info("Generated code collided, retrying", attempt=attempt)

    raise CodeGenerationError(f"Could not generate a unique code after {max_attempts} attempts")
