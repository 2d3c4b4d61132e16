"""Classification oracle backed by the OpenAI Responses API.

Public API:
    - :class:`OpenAIClassifier`

An instance is a callable ``items -> list[ClassificationResult] | None``.
``None`` means the batch failed (transport error after retries, error payload,
or unparseable output); callers skip write-back for that batch only. No side
effects occur at import time (no client creation, no environment reads).
"""

from __future__ import annotations

import json
import random
import time
from collections.abc import Mapping, Sequence
from typing import Any

from openai import OpenAI
from openai.types.responses import ResponseTextConfigParam

from . import prompting
from .categorization import parse_suggestions
from .logging_setup import get_logger
from .models import CategoryCatalog, ClassificationItem, ClassificationResult

# Seconds to wait before attempt 2, 3, ...; the last entry repeats.
_RETRY_DELAYS_SEC: tuple[float, ...] = (1.0, 4.0)
_RETRY_JITTER: float = 0.20

_logger = get_logger("ledger_tidy.classify")


def _output_text(resp: Any) -> str | None:
    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text:
        return text
    # Older SDK objects only expose output[0].content[0].text (str or .value).
    try:
        part = resp.output[0].content[0]
    except (AttributeError, IndexError, TypeError):
        return None
    text = getattr(part, "text", None)
    if not isinstance(text, str):
        text = getattr(text, "value", None)
    return text if isinstance(text, str) and text else None


def _response_payload(resp: Any) -> Mapping[str, Any]:
    """JSON object the model returned; ``ValueError`` if absent or malformed."""

    text = _output_text(resp)
    if text is None:
        raise ValueError("response carries no text output")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("model output is not valid JSON") from e
    if not isinstance(payload, Mapping):
        raise ValueError("model output is not a JSON object")
    return payload


def _is_transient(exc: BaseException) -> bool:
    """Rate limits, server errors and dropped connections are worth another try."""

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status == 429 or status >= 500
    from openai import APIConnectionError  # also covers APITimeoutError

    return isinstance(exc, APIConnectionError)


def _pause_before_retry(attempt: int) -> None:
    delay = _RETRY_DELAYS_SEC[min(attempt, len(_RETRY_DELAYS_SEC)) - 1]
    time.sleep(max(0.0, delay * (1 + random.uniform(-_RETRY_JITTER, _RETRY_JITTER))))


class OpenAIClassifier:
    """Send one batch of items to the model and return typed suggestions.

    Parameters
    ----------
    catalog:
        Allowed categories; enumerated verbatim in the prompt and used as the
        response schema enum (together with ``fallback_category``).
    fallback_category:
        Category the model is told to use when unsure.
    model / timeout / max_attempts:
        Model name, per-request timeout in seconds, and total attempts per
        batch (retries happen only for 429/5xx/transport errors).
    client:
        Optional pre-built client; created lazily otherwise.
    """

    def __init__(
        self,
        catalog: CategoryCatalog,
        fallback_category: str,
        *,
        model: str = "gpt-5",
        timeout: float = 120.0,
        max_attempts: int = 2,
        client: Any | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be a positive integer")
        self._model = model
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._client = client
        self._instructions = prompting.build_system_instructions(
            catalog.items, fallback_category
        )
        self._text_cfg = ResponseTextConfigParam(
            format=prompting.build_response_format(catalog.items, fallback_category)
        )
        self._batch_no = 0

    def _get_client(self) -> Any:
        if self._client is None:
            # Retries are handled here so the attempt count stays explicit.
            self._client = OpenAI(timeout=self._timeout, max_retries=0)
        return self._client

    def __call__(self, items: Sequence[ClassificationItem]) -> list[ClassificationResult] | None:
        batch_no = self._batch_no
        self._batch_no += 1
        if not items:
            return []

        user_content = prompting.build_user_content(prompting.serialize_items_to_json(items))
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                client = self._get_client()
                resp = client.responses.create(
                    model=self._model,
                    instructions=self._instructions,
                    input=user_content,
                    text=self._text_cfg,
                )
                results = parse_suggestions(_response_payload(resp))
                dt_ms = (time.perf_counter() - t0) * 1000.0
                _logger.info(
                    "classify:batch_done batch=%d items=%d results=%d latency_ms=%.2f",
                    batch_no,
                    len(items),
                    len(results),
                    dt_ms,
                )
                return results
            except Exception as e:  # noqa: BLE001 - oracle failures never abort a run
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= self._max_attempts or not _is_transient(e):
                    _logger.error(
                        "classify:batch_failed batch=%d items=%d latency_ms=%.2f attempt=%d "
                        "error=%s detail=%s",
                        batch_no,
                        len(items),
                        dt_ms,
                        attempt,
                        e.__class__.__name__,
                        e,
                    )
                    return None
                _logger.warning(
                    "classify:retry batch=%d items=%d latency_ms=%.2f error=%s attempt=%d",
                    batch_no,
                    len(items),
                    dt_ms,
                    e.__class__.__name__,
                    attempt,
                )
                _pause_before_retry(attempt)
                attempt += 1
