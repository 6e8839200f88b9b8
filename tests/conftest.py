from types import SimpleNamespace

import httpx
import pytest
from google.genai import errors, types

from counter_store import InMemoryCounterStore
from dispatcher import Dispatcher
from settings import DispatcherConfig, RateLimitConfig


def answer(text):
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=[types.Part(text=text)]))]
    )


def api_error(code):
    cls = errors.ClientError if code < 500 else errors.ServerError
    return cls(code, {"error": {"code": code, "message": f"status {code}", "status": "TEST"}})


def read_timeout():
    return httpx.ReadTimeout("read timed out")


class FakeModels:
    def __init__(self, gemini, credential):
        self.gemini = gemini
        self.credential = credential

    def generate_content(self, model, contents, config):
        self.gemini.calls.append((model, self.credential))
        self.gemini.configs.append(config)
        self.gemini.prompts.append(contents[0]["parts"][0]["text"] if contents else "")
        outcomes = self.gemini.script.get((model, self.credential))
        if not outcomes:
            raise AssertionError(f"unexpected call to {model} with {self.credential}")
        outcome = outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeGemini:
    """Plays back scripted outcomes per (model, key) and records every call."""

    def __init__(self):
        self.script = {}
        self.calls = []
        self.configs = []
        self.prompts = []

    def on(self, model, key, *outcomes):
        self.script.setdefault((model, key), []).extend(outcomes)
        return self

    def factory(self, credential):
        return SimpleNamespace(models=FakeModels(self, credential))


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def gemini():
    return FakeGemini()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def dispatcher_config():
    return DispatcherConfig(
        models=["model-a", "model-b"],
        credentials=["k1", "k2"],
        max_retries=2,
        backoff_base=0.5,
        backoff_cap=4.0,
        fallback_delay=3.0,
    )


@pytest.fixture
def dispatcher(dispatcher_config, gemini, sleeps):
    return Dispatcher(dispatcher_config, client_factory=gemini.factory, sleep=sleeps.append)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def rate_limit_config():
    return RateLimitConfig(max_per_hour=3, max_per_day=5, ip_whitelist=["172.16.255.61"], localhost_bypass=True)
