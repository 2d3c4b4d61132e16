"""Test helpers to stub the OpenAI Responses client used by classify.py.

The stub parses the user-content payload to extract the embedded items JSON
array and returns ``{"suggested_transactions": [...]}``. Tests provide a
``decide`` callable mapping each item to ``(updated_description, category)``
(or ``None`` to leave the item out of the response).
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

BEGIN = "BEGIN_TRANSACTIONS_JSON\n"
END = "\nEND_TRANSACTIONS_JSON"


def extract_items(user_content: str) -> list[dict[str, Any]]:
    b = user_content.find(BEGIN)
    e = user_content.rfind(END)
    if b == -1 or e == -1 or e <= b:
        raise AssertionError("classify: user content missing embedded items JSON block")
    return json.loads(user_content[b + len(BEGIN) : e])


class _Resp:
    def __init__(self, output_text: str) -> None:
        self.output_text = output_text


class OpenAIStub:
    """Minimal stub matching the ``openai.OpenAI`` shape used by ``classify.py``.

    Parameters
    ----------
    decide:
        Maps an item mapping to ``(updated_description, category)`` or ``None``.
    calls_out:
        Appended with each call's kwargs for lightweight assertions.
    errors:
        Exceptions raised (in order) by the first calls before answering.
    """

    def __init__(
        self,
        decide: Callable[[dict[str, Any]], tuple[str, str] | None],
        calls_out: list[dict[str, Any]] | None = None,
        errors: Sequence[BaseException] = (),
    ) -> None:
        self._decide = decide
        self._calls = calls_out if calls_out is not None else []
        self._errors = list(errors)

        class _Responses:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs):
                self._outer._calls.append(kwargs)
                if self._outer._errors:
                    raise self._outer._errors.pop(0)
                results = []
                for item in extract_items(kwargs["input"]):
                    decided = self._outer._decide(item)
                    if decided is None:
                        continue
                    description, category = decided
                    results.append(
                        {
                            "transaction_id": item["transaction_id"],
                            "updated_description": description,
                            "category": category,
                        }
                    )
                return _Resp(json.dumps({"suggested_transactions": results}))

        self.responses = _Responses(self)

    # Expose the captured calls list for assertions
    @property
    def calls(self) -> list[dict[str, Any]]:
        return self._calls


class RawOpenAIStub:
    """Stub that returns a fixed ``output_text`` for every call."""

    def __init__(self, output_text: str) -> None:
        self.calls: list[dict[str, Any]] = []
        outer = self

        class _Responses:
            def create(self, **kwargs):
                outer.calls.append(kwargs)
                return _Resp(output_text)

        self.responses = _Responses()
