# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Verification lifecycle and terminality rules.

State machine::

    idle -> pending -> processing -> verified | failed | timeout | error

Both status channels consult :func:`is_terminal` before deciding whether
to keep observing, so the terminal set is defined exactly once.
"""

from typing import FrozenSet, Union

from authbound.models import VerificationStatus

__all__ = ["TERMINAL_STATUSES", "advance", "is_terminal"]

TERMINAL_STATUSES: FrozenSet[VerificationStatus] = frozenset({
    VerificationStatus.VERIFIED,
    VerificationStatus.FAILED,
    VerificationStatus.TIMEOUT,
    VerificationStatus.ERROR,
})


def is_terminal(status: Union[VerificationStatus, str]) -> bool:
    """Return ``True`` iff *status* ends the verification flow.

    Unknown status strings are never terminal.
    """
    try:
        return VerificationStatus(status) in TERMINAL_STATUSES
    except ValueError:
        return False


def advance(
    previous: VerificationStatus,
    candidate: VerificationStatus,
) -> VerificationStatus:
    """Return the status observed after *candidate* arrives.

    A terminal *previous* status is sticky; otherwise the candidate wins.
    """
    if is_terminal(previous):
        return previous
    return candidate
