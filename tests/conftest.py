"""Shared fixtures.

The LLM key is blanked for every test so nothing ever reaches the real
endpoint; tests that need model output stub ``finance_extractor.llm``
functions or hand an ``httpx.MockTransport`` client to ``generate_content``.
"""

import datetime as dt

import pytest

from finance_extractor import llm
from finance_extractor.store import InMemoryStore

TODAY = dt.date(2025, 6, 15)


@pytest.fixture(autouse=True)
def _no_llm_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(llm, "GEMINI_API_KEY", "")


@pytest.fixture
def today() -> dt.date:
    return TODAY


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()
