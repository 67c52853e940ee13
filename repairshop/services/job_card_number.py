"""
Job card number allocation.

A job card number looks like ``JD4567-K7QZ123456``: a name prefix, the last
four phone digits, a separator, a random token and the last six digits of the
epoch-millisecond clock. Numbers are checked against the job store before
being handed out; the unique constraint on ``job.job_card_number`` remains the
final guarantee under concurrent creation.
"""

import logging
import re
import secrets
import time
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

# No 0/O, 1/I: easy to read back over the phone
TOKEN_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
DEFAULT_TOKEN_LENGTH = 4
DEFAULT_MAX_ATTEMPTS = 5
TIME_TOKEN_DIGITS = 6


class JobCardLookupError(Exception):
    """The job store could not answer whether a number is taken."""

    def __init__(self, message, job_card_number=None):
        super().__init__(message)
        self.message = message
        self.job_card_number = job_card_number


class JobCardAllocationError(Exception):
    """Every attempt produced a number that was already taken."""

    def __init__(self, message='Could not allocate a job number', attempts=0):
        super().__init__(message)
        self.message = message
        self.attempts = attempts


class LookupOutcome(Enum):
    NOT_FOUND = 'not_found'
    FOUND = 'found'


def epoch_millis() -> int:
    return int(time.time() * 1000)


def name_prefix(name: str) -> str:
    """Two upper-case letters: initials of the first two words, else the first two letters."""
    words = [re.sub(r'[^A-Za-z]', '', word) for word in (name or '').split()]
    words = [word for word in words if word]
    if len(words) >= 2:
        prefix = words[0][0] + words[1][0]
    else:
        prefix = ''.join(words)[:2]
    return prefix.upper().ljust(2, 'X')


def phone_suffix(phone: str) -> str:
    digits = re.sub(r'\D', '', phone or '')
    return digits[-4:].rjust(4, '0')


def random_token(random_bytes: Callable[[int], bytes], length: int = DEFAULT_TOKEN_LENGTH) -> str:
    # 256 is a multiple of the alphabet size, so byte % 32 is unbiased
    return ''.join(TOKEN_ALPHABET[b % len(TOKEN_ALPHABET)] for b in random_bytes(length))


def time_token(millis: int) -> str:
    return str(millis)[-TIME_TOKEN_DIGITS:].rjust(TIME_TOKEN_DIGITS, '0')


def compose(prefix: str, phone: str, token: str, clock_token: str) -> str:
    return f"{prefix}{phone}-{token}{clock_token}"


class SQLAlchemyJobCardStore:
    """Answers ``exists`` against the job table."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        if self._session is not None:
            return self._session
        from repairshop.extensions import db
        return db.session

    def lookup(self, job_card_number: str) -> LookupOutcome:
        from repairshop.models.job import Job
        try:
            found = self.session.query(Job.id).filter(
                Job.job_card_number == job_card_number
            ).first()
        except SQLAlchemyError as e:
            logger.error(f"Job card lookup failed for {job_card_number}: {e}", exc_info=True)
            raise JobCardLookupError("Could not check job card number", job_card_number) from e
        return LookupOutcome.FOUND if found else LookupOutcome.NOT_FOUND

    def exists(self, job_card_number: str) -> bool:
        return self.lookup(job_card_number) is LookupOutcome.FOUND


class JobCardNumberAllocator:
    """
    Generate a job card number and confirm it is free in the job store.

    Args:
        store: object with ``exists(number) -> bool``; raises on lookup failure
        random_bytes: secure random source, ``n -> bytes``
        clock_ms: epoch-millisecond clock
        max_attempts: collisions tolerated before giving up
        token_length: length of the random token
    """

    def __init__(self, store, random_bytes: Callable[[int], bytes] = secrets.token_bytes,
                 clock_ms: Callable[[], int] = epoch_millis,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 token_length: int = DEFAULT_TOKEN_LENGTH):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.random_bytes = random_bytes
        self.clock_ms = clock_ms
        self.max_attempts = max_attempts
        self.token_length = token_length

    def generate(self, customer_name: str, customer_phone: str) -> str:
        """One candidate number, without checking the store."""
        return compose(
            name_prefix(customer_name),
            phone_suffix(customer_phone),
            random_token(self.random_bytes, self.token_length),
            time_token(self.clock_ms()),
        )

    def allocate(self, customer_name: str, customer_phone: str, exclude: Optional[set] = None) -> str:
        """
        Return a number that the store does not know about.

        ``exclude`` holds numbers already rejected by the caller (for example
        by a unique constraint at insert time) and counts as a collision.

        Raises:
            JobCardLookupError: the store lookup failed
            JobCardAllocationError: every attempt collided
        """
        exclude = exclude or set()
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.generate(customer_name, customer_phone)
            if candidate in exclude:
                logger.info(f"Job card number {candidate} was rejected earlier, regenerating (attempt {attempt})")
                continue
            if not self.store.exists(candidate):
                return candidate
            logger.info(f"Job card number {candidate} already exists, regenerating (attempt {attempt})")

        logger.error(f"Could not allocate a job card number after {self.max_attempts} attempts")
        raise JobCardAllocationError(attempts=self.max_attempts)
