"""Password submission checks shared by the form and async protocols.

Branches: SUBMIT-BAD-NONCE, SUBMIT-NO-SECRET, SUBMIT-NO-PASSWORD,
SUBMIT-ACCEPTED, SUBMIT-REJECTED
"""
from __future__ import annotations

import logging

from models import SubmissionOutcome, SubmissionResult
from nonces import VERIFY_ACTION, NonceService
from passwords import SecretHasher

logger = logging.getLogger(__name__)


def _rejected(reason: str) -> SubmissionResult:
    logger.info("Checkout password submission rejected (%s)", reason)
    return SubmissionResult(SubmissionOutcome.REJECTED, reason)


class SubmissionHandler:
    """Verifies one password submission.

    The anti-forgery token is checked before the password so that a forged
    cross-site post never reaches the hash comparison.
    """

    def __init__(self, hasher: SecretHasher, nonces: NonceService) -> None:
        self.hasher = hasher
        self.nonces = nonces

    def attempt(
        self,
        submitted_secret: str | None,
        stored_hash: str,
        nonce: str | None,
        session_id: str,
        now: float,
    ) -> SubmissionResult:
        if not self.nonces.verify(nonce, VERIFY_ACTION, session_id, now):
            return _rejected("anti-forgery")                      # SUBMIT-BAD-NONCE

        if not submitted_secret:                                  # SUBMIT-NO-SECRET
            return _rejected("missing secret")

        if not stored_hash:                                       # SUBMIT-NO-PASSWORD
            return _rejected("no password configured")

        if self.hasher.verify(submitted_secret, stored_hash):     # SUBMIT-ACCEPTED
            logger.info("Checkout password accepted")
            return SubmissionResult(SubmissionOutcome.ACCEPTED)

        return _rejected("wrong secret")                          # SUBMIT-REJECTED
