"""The checkout gate decision engine.

``CheckoutGate.decide`` walks a fixed sequence of states for one request;
the first state that matches produces the decision:

1. not the guarded route               -> Allow
2. async endpoint / confirmation page  -> Allow
3. host not in the protected set       -> Allow
4. no password configured              -> Allow
5. caller holds a valid token          -> Allow
6. correct password just submitted     -> RedirectTo(guarded URL) + token
7. otherwise                           -> Challenge

Anything unexpected from a collaborator during steps 1-4 fails open;
after that it challenges. The engine never raises; the HTTP adapter
interprets whatever it returns.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from contract import COOKIE_NAME, FAILURE_MESSAGE, NONCE_FIELD, SECRET_FIELD
from hosts import is_protected, normalize_host
from models import (
    Allow,
    Challenge,
    Decision,
    GateSettings,
    JsonResult,
    ProtectionStatus,
    RedirectTo,
    RequestContext,
    RouteKind,
    SettingsStatus,
)
from nonces import VERIFY_ACTION, NonceService
from store import CredentialStore
from submission import SubmissionHandler
from tokens import TokenCodec

logger = logging.getLogger(__name__)


class CheckoutGate:
    """Single gate instance, built once by the application factory."""

    def __init__(
        self,
        store: CredentialStore,
        codec: TokenCodec,
        submissions: SubmissionHandler,
        nonces: NonceService,
        guarded_path: str = "/checkout",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.codec = codec
        self.submissions = submissions
        self.nonces = nonces
        self.guarded_path = guarded_path
        self._clock = clock

    def guarded_url(self, site_url: str) -> str:
        return site_url.rstrip("/") + self.guarded_path

    # -- Page requests ------------------------------------------------------

    def decide(self, ctx: RequestContext) -> Decision:
        """Decide what to do with a request.

        Failures while working out whether the host is gated fail open.
        Once a protected host with a password is established, failures
        challenge instead.

        Branches: GATE-ERROR-OPEN, GATE-ERROR-CLOSED (plus everything in
        ``_screen`` and ``_authenticate``)
        """
        try:
            now = self._clock()
            decision, settings = self._screen(ctx)
        except Exception:                                         # GATE-ERROR-OPEN
            logger.exception("Checkout gate failed; allowing request")
            return Allow("error")

        if decision is None:
            try:
                decision = self._authenticate(ctx, settings, now)
            except Exception:                                     # GATE-ERROR-CLOSED
                logger.exception("Checkout password check failed; challenging")
                decision = self._fallback_challenge(ctx, now)

        logger.debug("Gate decision for %s: %r", ctx.host, decision)
        return decision

    def _screen(
        self, ctx: RequestContext,
    ) -> tuple[Decision | None, GateSettings | None]:
        """Steps that may let a request through unchallenged.

        Branches: GATE-NOT-GUARDED, GATE-BYPASS, GATE-HOST-OPEN,
        GATE-NO-PASSWORD
        """
        if ctx.route is RouteKind.OTHER:                          # GATE-NOT-GUARDED
            return Allow("not guarded"), None

        if ctx.route in (RouteKind.ASYNC, RouteKind.CONFIRMATION):  # GATE-BYPASS
            return Allow("bypass"), None

        settings = self.store.get()
        if not is_protected(ctx.host, settings.protected_hosts):  # GATE-HOST-OPEN
            return Allow("host not protected"), None

        if not settings.has_password:                             # GATE-NO-PASSWORD
            return Allow("no password configured"), None

        return None, settings

    def _authenticate(self, ctx: RequestContext, settings: GateSettings,
                      now: float) -> Decision:
        """Branches: GATE-TOKEN-VALID, GATE-SUBMIT-ACCEPTED, GATE-CHALLENGE"""
        token = ctx.cookies.get(COOKIE_NAME)
        if self.codec.verify(token, settings.password_hash,       # GATE-TOKEN-VALID
                             ctx.site_url, now):
            return Allow("valid token")

        submitted = ctx.is_post and SECRET_FIELD in ctx.form
        if submitted:
            result = self.submissions.attempt(
                ctx.form.get(SECRET_FIELD),
                settings.password_hash,
                ctx.form.get(NONCE_FIELD),
                ctx.session_id,
                now,
            )
            if result.accepted:                                   # GATE-SUBMIT-ACCEPTED
                return RedirectTo(
                    url=self.guarded_url(ctx.site_url),
                    token=self.codec.issue(
                        settings.password_hash, ctx.site_url, now
                    ),
                )

        return Challenge(                                         # GATE-CHALLENGE
            nonce=self.nonces.create(VERIFY_ACTION, ctx.session_id, now),
            failed=submitted,
        )

    def _fallback_challenge(self, ctx: RequestContext, now: float) -> Challenge:
        try:
            nonce = self.nonces.create(VERIFY_ACTION, ctx.session_id, now)
        except Exception:
            logger.exception("Cannot create a nonce; form will not verify")
            nonce = ""
        return Challenge(nonce=nonce)

    # -- Async submissions --------------------------------------------------

    def verify_async(self, ctx: RequestContext) -> JsonResult:
        """Handle the asynchronous password endpoint.

        Branches: ASYNC-ACCEPTED, ASYNC-REJECTED
        """
        failure = JsonResult(success=False, payload={"message": FAILURE_MESSAGE})
        now = self._clock()
        try:
            settings = self.store.get()
            result = self.submissions.attempt(
                ctx.form.get(SECRET_FIELD),
                settings.password_hash,
                ctx.form.get(NONCE_FIELD),
                ctx.session_id,
                now,
            )
            if not result.accepted:                               # ASYNC-REJECTED
                return failure
            token = self.codec.issue(settings.password_hash, ctx.site_url, now)
        except Exception:
            logger.exception("Async checkout password check failed")
            return failure

        return JsonResult(                                        # ASYNC-ACCEPTED
            success=True,
            payload={"redirect": self.guarded_url(ctx.site_url)},
            token=token,
        )

    # -- Administration -----------------------------------------------------

    def status(self, current_host: str) -> SettingsStatus:
        """Describe how the gate treats ``current_host`` right now."""
        settings = self.store.get()
        matched = is_protected(current_host, settings.protected_hosts)
        if matched and settings.has_password:
            status = ProtectionStatus.PROTECTED
        elif matched:
            status = ProtectionStatus.MATCHED_NO_PASSWORD
        else:
            status = ProtectionStatus.OPEN
        return SettingsStatus(
            protected_hosts=settings.protected_hosts,
            has_password=settings.has_password,
            current_host=normalize_host(current_host),
            status=status,
        )
