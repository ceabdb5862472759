"""
Sequential anonymous numbers per course.

Numbers are handed out as max + 1 in order of first appearance and persisted
with two unique constraints: (course, token) so a thread never gets a second
number, and (course, number) so two threads never share one. A viewer that
loses a race re-reads the authoritative rows and tries the next slot.
"""

from typing import Dict, Iterable, List

from classdesk.config import get_settings
from classdesk.kernel.errors import ConflictError
from classdesk.kernel.store.capabilities import Store
from classdesk.logging_config import get_logger

logger = get_logger(__name__)


def unique_in_order(tokens: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for token in tokens:
        if token and token not in seen:
            seen.add(token)
            ordered.append(token)
    return ordered


class AliasAllocator:
    """Assign each active thread of a course exactly one alias number."""

    def __init__(self, store: Store, max_attempts: int = 0):
        self.store = store
        self.max_attempts = max_attempts or get_settings().alias_max_attempts

    async def load(self, course_code: str) -> Dict[str, int]:
        rows = await self.store.select("student_aliases", {"course_code": course_code})
        return {row["client_token"]: row["alias_number"] for row in rows}

    async def ensure_aliases(self, course_code: str, tokens: Iterable[str]) -> Dict[str, int]:
        """
        Make sure every token has a number and return the full token → number map.

        Tokens are visited in the order given (first appearance), so with no
        competing viewer the numbering follows arrival order.
        """
        aliases = await self.load(course_code)
        missing = [t for t in unique_in_order(tokens) if t not in aliases]
        if not missing:
            return aliases

        for token in missing:
            if token in aliases:
                continue
            aliases = await self._allocate(course_code, token, aliases)

        logger.debug(
            "Aliases allocated",
            extra={"course_code": course_code, "new_tokens": len(missing)},
        )
        return aliases

    async def _allocate(self, course_code: str, token: str, aliases: Dict[str, int]) -> Dict[str, int]:
        for attempt in range(self.max_attempts):
            number = max(aliases.values(), default=0) + 1
            row = await self.store.insert_if_absent(
                "student_aliases",
                {"course_code": course_code, "client_token": token, "alias_number": number},
            )
            if row is not None:
                aliases = dict(aliases)
                aliases[token] = row["alias_number"]
                return aliases

            # Lost a race: either this token was numbered elsewhere or the slot was taken
            aliases = await self.load(course_code)
            if token in aliases:
                return aliases
            logger.info(
                "Alias slot taken, retrying",
                extra={"course_code": course_code, "alias_number": number, "attempt": attempt + 1},
            )

        raise ConflictError(f"Could not allocate an alias in course {course_code}")
