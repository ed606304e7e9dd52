from __future__ import annotations

"""Sequential failover of one speech request across the credential pool."""

from dataclasses import dataclass
from time import monotonic
from typing import Callable, Literal, Optional, Protocol, Union

from app.bot.services.credentials import CredentialPool
from app.bot.services.logging import get_logger
from app.bot.services.metrics import metrics
from app.bot.services.stt import FatalError, Outcome, RateLimited, SpeechRequest, Success, TransientError
from app.utils.time import utcnow


@dataclass(frozen=True)
class Exhausted:
    """No credential produced a result.

    cause is "rate_limited" only when every attempt was rate limited.
    """

    cause: Literal["rate_limited", "error"]
    attempts: int
    last_reason: Optional[str] = None


FailoverResult = Union[Success, Exhausted]


class SpeechRunner(Protocol):
    async def run(self, api_key: str, request: SpeechRequest) -> Outcome: ...


def _result_label(outcome: Outcome) -> str:
    if isinstance(outcome, Success):
        return "success"
    if isinstance(outcome, RateLimited):
        return "rate_limited"
    if isinstance(outcome, TransientError):
        return "transient"
    return "fatal"


async def run_with_failover(
    pool: CredentialPool,
    runner: SpeechRunner,
    request: SpeechRequest,
    *,
    deadline: float | None = None,
    clock: Callable[[], float] = monotonic,
) -> FailoverResult:
    """Try credentials in pool order until one succeeds.

    Each credential is attempted at most once. No attempt starts after
    `deadline` (a `clock()` reading); untried credentials are left alone.
    """

    logger = get_logger(kind=request.kind)
    failures: list[Outcome] = []
    for slot in pool:
        if not slot.is_usable(utcnow()):
            logger.info("credential_skipped", credential=slot.position)
            continue
        if deadline is not None and clock() >= deadline:
            logger.warning("invocation_budget_spent", attempts=len(failures))
            break

        outcome = await runner.run(slot.api_key, request)
        metrics.inc("upstream_attempts_total", labels={"result": _result_label(outcome)})
        if isinstance(outcome, Success):
            logger.info("upstream_ok", credential=slot.position, attempts=len(failures) + 1)
            return outcome
        if isinstance(outcome, RateLimited):
            pool.mark_rate_limited(slot, outcome.retry_after)
            logger.warning("upstream_rate_limited", credential=slot.position, retry_after=outcome.retry_after)
        elif isinstance(outcome, TransientError):
            logger.warning("upstream_transient_error", credential=slot.position, reason=outcome.reason)
        else:
            logger.error("upstream_fatal_error", credential=slot.position, reason=outcome.reason)
        failures.append(outcome)

    all_limited = bool(failures) and all(isinstance(o, RateLimited) for o in failures)
    last_reason = next(
        (o.reason for o in reversed(failures) if isinstance(o, (TransientError, FatalError))),
        None,
    )
    logger.warning("credentials_exhausted", attempts=len(failures), all_rate_limited=all_limited)
    return Exhausted(cause="rate_limited" if all_limited else "error", attempts=len(failures), last_reason=last_reason)


class FailoverOrchestrator:
    """Builds a fresh credential pool per call and runs the failover loop."""

    def __init__(self, runner: SpeechRunner, api_keys: list[str]) -> None:
        if not api_keys:
            raise ValueError("at least one API key is required")
        self._runner = runner
        self._api_keys = list(api_keys)

    async def run(self, request: SpeechRequest, *, deadline: float | None = None) -> FailoverResult:
        return await run_with_failover(CredentialPool(self._api_keys), self._runner, request, deadline=deadline)
