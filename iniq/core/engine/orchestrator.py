"""
Orchestrator — the central execution loop.

Drives every active feature, in priority order, through its lifecycle
and collects one outcome per operation:

    detect → display → prompt → title → validate → execute (≤ 3 attempts)

Failure handling is decided here, never inside features:

    validation   no retry; a critical feature aborts the run
    relogin      abort the run, ask for a new login session
    permission   sudo-backed feature, interactive: join sudo group / skip / abort;
                 otherwise fail
    transient    sleep 2s, retry
    other        sleep 1s, retry

Execution is strictly sequential; one feature finishes before the next
one is even detected, so later features see earlier side effects.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from iniq.core.engine.remediation import Remediation, offer_sudo_group
from iniq.core.features.base import DetectedState, ExecutionContext, Feature
from iniq.core.features.registry import sort_by_priority
from iniq.core.models.outcome import RunReport
from iniq.core.reliability.errors import ErrorKind, IniqError, classify_error
from iniq.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)

Remediator = Callable[[ExecutionContext, str, BaseException], Remediation]


class Orchestrator:
    """Runs features against one execution context."""

    def __init__(
        self,
        ctx: ExecutionContext,
        *,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        remediator: Remediator | None = offer_sudo_group,
        on_start: Callable[[str], None] | None = None,
    ):
        self.ctx = ctx
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.remediator = remediator
        self.on_start = on_start

    def run(self, features: list[Feature]) -> RunReport:
        """Run ``features`` in priority order and report the outcomes."""
        report = RunReport()
        for feature in sort_by_priority(features):
            self.run_feature(feature, report)
            if report.aborted:
                break
        return report

    # ── Lifecycle ───────────────────────────────────────────────

    def run_feature(self, feature: Feature, report: RunReport) -> None:
        ctx = self.ctx
        state = self._detect(feature)
        detected = state is not None
        if state is None:
            state = {}

        try:
            # nothing to show or decide on without a detected state
            if detected:
                feature.display_current_state(ctx, state)
                if feature.should_prompt_user(ctx, state):
                    feature.prompt_user(ctx, state)
            title = feature.operation_title(ctx, state)
        except IniqError as e:
            title = feature.description
            self._fail(feature, title, e, report)
            return

        if title is None:
            logger.debug("%s: nothing to do", feature.name)
            report.skipped.append(feature.name)
            return

        self._start(title)

        try:
            feature.validate_options(ctx.options)
        except IniqError as e:
            self._fail(feature, title, e, report)
            return

        self._execute_with_retry(feature, title, report)

    def _detect(self, feature: Feature) -> DetectedState | None:
        try:
            return feature.detect_current_state(self.ctx)
        except Exception as e:
            # detection failing (e.g. needs root) is not fatal
            logger.warning("Could not detect %s state: %s", feature.name, e)
            return None

    def _start(self, title: str) -> None:
        if self.on_start is not None:
            self.on_start(title)
        else:
            logger.info("==> %s", title)

    def _execute_with_retry(self, feature: Feature, title: str, report: RunReport) -> None:
        ctx = self.ctx
        attempt = 0
        remediated = False

        while True:
            attempt += 1
            try:
                feature.execute(ctx)
            except Exception as e:
                kind = classify_error(e)
                logger.debug("%s attempt %d failed (%s): %s", feature.name, attempt, kind.value, e)

                if kind is ErrorKind.RELOGIN:
                    self._relogin(title, e, report)
                    return

                if kind is ErrorKind.PERMISSION:
                    if remediated or not self._can_remediate(feature):
                        if not ctx.host.is_root:
                            logger.info("Run iniq as root (for example with sudo) to apply '%s'", title)
                        self._fail(feature, title, e, report)
                        return
                    remediated = True
                    decision = self.remediator(ctx, title, e)
                    if decision is Remediation.RETRY:
                        attempt -= 1
                        continue
                    if decision is Remediation.SKIP:
                        report.skipped.append(title)
                        return
                    if decision is Remediation.RELOGIN:
                        self._relogin(title, e, report)
                        return
                    self._fail(feature, title, e, report, abort=True)
                    return

                if not self.policy.is_retryable(kind):
                    self._fail(feature, title, e, report, abort=kind is ErrorKind.CRITICAL)
                    return

                if self.policy.exhausted(attempt):
                    logger.error("Failed after %d attempts", attempt)
                    self._fail(feature, title, e, report)
                    return

                delay = self.policy.delay_for(kind)
                logger.warning(
                    "Attempt %d/%d of '%s' failed: %s (retrying in %.0fs)",
                    attempt, self.policy.max_attempts, title, e, delay,
                )
                self.sleep(delay)
                continue

            report.record(title, True)
            logger.info("✓ %s", title)
            return

    # ── Outcomes ────────────────────────────────────────────────

    def _can_remediate(self, feature: Feature) -> bool:
        return (
            feature.runs_via_sudo
            and self.remediator is not None
            and self.ctx.can_prompt
            and not self.ctx.host.is_root
        )

    def _fail(
        self,
        feature: Feature,
        title: str,
        error: BaseException,
        report: RunReport,
        abort: bool = False,
    ) -> None:
        report.record(title, False)
        logger.error("✗ %s: %s", title, error)
        if abort or feature.critical:
            report.aborted = True
            report.abort_reason = f"{title}: {error}"
            if feature.critical:
                logger.error("'%s' is a critical operation, stopping", title)

    def _relogin(self, title: str, error: BaseException, report: RunReport) -> None:
        logger.warning("%s", error)
        logger.info("Please log out and log back in, then run iniq again")
        report.aborted = True
        report.relogin_required = True
        report.abort_reason = f"{title}: {error}"
