"""
Optimistic concurrency helpers.

A read-then-conditional-write sequence that loses a version race is
re-run from a fresh read. This is not a retry of a failed store call:
the store answered, the answer was "someone else wrote first".
"""

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from tenant_ledger.services.storage.interface import ConflictError


def conflict_retrying(attempts: int) -> AsyncRetrying:
    """
    Re-run a block on ConflictError, up to `attempts` times in total.

    Usage:
        async for attempt in conflict_retrying(5):
            with attempt:
                await read_and_conditionally_write()
    """
    return AsyncRetrying(
        retry=retry_if_exception_type(ConflictError),
        stop=stop_after_attempt(attempts),
        reraise=True,
    )
