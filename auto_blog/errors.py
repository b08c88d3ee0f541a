"""
Error classification, retry with exponential backoff, and safe batch execution.

Every network-calling part of the pipeline goes through these helpers, so a
single failing topic, provider or post never takes the whole run down.
"""

import functools
import json
import logging
import re
import time
import traceback
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    NETWORK = "NETWORK_ERROR"
    API_LIMIT = "API_LIMIT_EXCEEDED"
    TIMEOUT = "EXECUTION_TIMEOUT"
    AUTHENTICATION = "AUTH_ERROR"
    INVALID_DATA = "INVALID_DATA"
    WORDPRESS = "WORDPRESS_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


# Checked in this order against the lowercased message; first match wins.
# Word boundaries keep "rate" from matching "generate" and similar.
_KEYWORD_FAMILIES = [
    (ErrorKind.NETWORK, re.compile(r"network|connection|timed out")),
    (ErrorKind.API_LIMIT, re.compile(r"quota|\blimits?\b|\brate\b|rate_limit|too many requests")),
    (ErrorKind.TIMEOUT, re.compile(r"timeout|exceeded maximum execution")),
    (ErrorKind.AUTHENTICATION, re.compile(r"unauthorized|authentication|api[ _]key")),
    (ErrorKind.WORDPRESS, re.compile(r"wordpress|wp-json")),
]

NON_RETRYABLE_PATTERNS = [
    re.compile(r"invalid.*api.*key", re.IGNORECASE),
    re.compile(r"unauthorized", re.IGNORECASE),
    re.compile(r"forbidden", re.IGNORECASE),
    re.compile(r"not.*found", re.IGNORECASE),
    re.compile(r"invalid.*credentials", re.IGNORECASE),
]

NON_RETRYABLE_KINDS = {
    ErrorKind.AUTHENTICATION,
    ErrorKind.INVALID_DATA,
    ErrorKind.TIMEOUT,
}


class PipelineError(Exception):
    """
    An error tagged with its ErrorKind.

    retryable=None leaves the decision to the kind and message patterns;
    True/False overrides it (e.g. a CMS rejecting a post for good).
    """

    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: Optional[ErrorKind] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.retryable = retryable


class InvalidDataError(PipelineError):
    """A payload (usually AI output) could not be decoded into the expected shape."""

    kind = ErrorKind.INVALID_DATA


class ExecutionTimeout(PipelineError):
    kind = ErrorKind.TIMEOUT


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception to exactly one ErrorKind."""
    if isinstance(error, PipelineError):
        return error.kind

    message = str(error).lower()
    for kind, pattern in _KEYWORD_FAMILIES:
        if pattern.search(message):
            return kind
    return ErrorKind.UNKNOWN


def is_non_retryable_message(message: str) -> bool:
    return any(pattern.search(message) for pattern in NON_RETRYABLE_PATTERNS)


def is_retryable(error: BaseException) -> bool:
    """Decide whether retrying could possibly fix this error."""
    if isinstance(error, PipelineError) and error.retryable is not None:
        return error.retryable
    if is_non_retryable_message(str(error)):
        return False
    return classify_error(error) not in NON_RETRYABLE_KINDS


# ============================================================================
# ERROR RECORDS
# ============================================================================

@dataclass(frozen=True)
class ErrorRecord:
    kind: ErrorKind
    message: str
    context: str
    timestamp_ms: int
    stack_trace: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data['kind'] = self.kind.value
        data['stack_trace'] = self.stack_trace[:1000]
        return data


class ErrorLog:
    """Append-only log of ErrorRecords, optionally mirrored to a JSON-lines file."""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._records: List[ErrorRecord] = []

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)
        if not self.path:
            return
        try:
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")
        except OSError as e:
            logger.warning(f"Could not write error log {self.path}: {e}")

    @property
    def records(self) -> List[ErrorRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)


_LOG_LABELS = {
    ErrorKind.NETWORK: "Network error",
    ErrorKind.API_LIMIT: "API limit exceeded",
    ErrorKind.TIMEOUT: "Execution timeout",
    ErrorKind.AUTHENTICATION: "Authentication error",
    ErrorKind.INVALID_DATA: "Invalid data",
    ErrorKind.WORDPRESS: "WordPress error",
}


def classify_and_log_error(error: BaseException, context: str = "",
                           error_log: Optional[ErrorLog] = None) -> ErrorRecord:
    """Classify an error, log it, and append a record to the error log."""
    kind = classify_error(error)
    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    record = ErrorRecord(
        kind=kind,
        message=str(error),
        context=context,
        timestamp_ms=int(time.time() * 1000),
        stack_trace=stack or "No stack trace",
    )

    if kind is ErrorKind.UNKNOWN:
        logger.error(f"UNCLASSIFIED error [{context}]: {error}")
    elif kind in (ErrorKind.NETWORK, ErrorKind.API_LIMIT):
        logger.warning(f"{_LOG_LABELS[kind]} [{context}]: {error}")
    else:
        logger.error(f"{_LOG_LABELS[kind]} [{context}]: {error}")

    if error_log is not None:
        error_log.append(record)
    return record


# ============================================================================
# RETRY
# ============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """Retry options; delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0

    def wrap(self, func: Callable, sleep: Callable[[float], Any] = time.sleep) -> Callable:
        return with_retry(
            func,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            backoff_multiplier=self.backoff_multiplier,
            max_delay=self.max_delay,
            sleep=sleep,
        )


def with_retry(func: Callable, max_retries: int = 3, initial_delay: float = 1.0,
               backoff_multiplier: float = 2.0, max_delay: float = 30.0,
               sleep: Callable[[float], Any] = time.sleep) -> Callable:
    """
    Wrap func so that failures are retried with exponential backoff.

    The wrapped callable invokes func at most max_retries + 1 times. The
    first success is returned immediately. Errors that retrying cannot fix
    (bad credentials, malformed data, timeouts) are raised on the spot.
    After the last attempt the last error is raised.
    """
    name = getattr(func, '__name__', repr(func))

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        last_error = None
        delay = initial_delay

        for attempt in range(max_retries + 1):
            try:
                result = func(*args, **kwargs)
                if attempt > 0:
                    logger.info(f"{name} succeeded on retry {attempt}/{max_retries}")
                else:
                    logger.debug(f"{name} succeeded on attempt 1")
                return result
            except Exception as e:
                last_error = e

                if attempt == max_retries:
                    logger.error(f"{name} failed after {attempt + 1} attempts: {e}")
                    break

                if not is_retryable(e):
                    logger.error(f"{name} hit a non-retryable error: {e}")
                    break

                logger.warning(f"{name} retry {attempt + 1}/{max_retries} in {delay:.1f}s: {e}")
                sleep(delay)
                delay = min(delay * backoff_multiplier, max_delay)

        raise last_error

    return wrapper


def safe_execute(func: Callable, fallback: Optional[Callable] = None, context: str = "",
                 error_log: Optional[ErrorLog] = None):
    """Run func; on failure log it and return fallback() (or None)."""
    try:
        return func()
    except Exception as e:
        classify_and_log_error(e, context, error_log)

        if fallback is not None:
            logger.info(f"Running fallback: {context}")
            try:
                return fallback()
            except Exception as fallback_error:
                logger.error(f"Fallback also failed [{context}]: {fallback_error}")
        return None


# ============================================================================
# TIME BUDGET
# ============================================================================

class TimeBudget:
    """Wall-clock budget checked between units of work."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._started = clock()

    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self) -> float:
        return max(0.0, self.seconds - self.elapsed())

    def expired(self) -> bool:
        return self.elapsed() >= self.seconds

    def check(self, context: str = "") -> None:
        if self.expired():
            raise ExecutionTimeout(
                f"Exceeded maximum execution time of {self.seconds}s ({context or 'pipeline'})"
            )


# ============================================================================
# BATCH PROCESSING
# ============================================================================

@dataclass
class ItemOutcome:
    index: int
    item: Any
    success: bool
    value: Any = None
    error: Optional[ErrorRecord] = None


@dataclass
class BatchError:
    index: int
    item: Any
    error: ErrorRecord


@dataclass
class BatchResult:
    results: List[ItemOutcome] = field(default_factory=list)
    errors: List[BatchError] = field(default_factory=list)
    success_count: int = 0
    total_count: int = 0
    timeout: Optional[ErrorRecord] = None

    @property
    def success_rate(self) -> float:
        """Percentage of all items (not just attempted ones) that succeeded."""
        if not self.total_count:
            return 0.0
        return round(self.success_count / self.total_count * 100, 1)

    @property
    def values(self) -> list:
        return [r.value for r in self.results if r.success]


def safe_batch_process(items: Sequence, process_fn: Callable[[Any, int], Any],
                       continue_on_error: bool = True, log_progress: bool = True,
                       budget: Optional[TimeBudget] = None,
                       error_log: Optional[ErrorLog] = None) -> BatchResult:
    """
    Apply process_fn(item, index) to each item in order, isolating failures.

    With continue_on_error=False the loop stops at the first failure and the
    remaining items are left untouched. When a budget is given it is checked
    before every item; running out stops the loop and sets result.timeout.
    """
    result = BatchResult(total_count=len(items))

    for i, item in enumerate(items):
        if budget is not None and budget.expired():
            timeout = ExecutionTimeout(
                f"Exceeded maximum execution time after {i}/{len(items)} items"
            )
            result.timeout = classify_and_log_error(timeout, f"batch_item_{i}", error_log)
            break

        if log_progress and i % 5 == 0:
            logger.info(f"Batch progress: {i}/{len(items)} (succeeded: {result.success_count})")

        try:
            value = process_fn(item, i)
        except Exception as e:
            record = classify_and_log_error(e, f"batch_item_{i}", error_log)
            result.results.append(ItemOutcome(index=i, item=item, success=False, error=record))
            result.errors.append(BatchError(index=i, item=item, error=record))

            if not continue_on_error:
                logger.warning(f"Batch stopped at item {i}: {e}")
                break
            continue

        result.results.append(ItemOutcome(index=i, item=item, success=True, value=value))
        result.success_count += 1

    logger.info(
        f"Batch finished: {result.success_count}/{result.total_count} succeeded, "
        f"{len(result.errors)} failed ({result.success_rate}%)"
    )
    return result
