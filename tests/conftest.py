import pytest


class FakeSleep:
    """Records requested sleeps (seconds) instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def delays_ms(self) -> list[float]:
        return [round(s * 1000, 6) for s in self.calls]


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


class HTTPError(Exception):
    """Error shaped like an HTTP client/SDK error."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


@pytest.fixture
def http_error():
    return HTTPError


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.config and NOTEFLOW_* env."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    for name in (
        "NOTEFLOW_MAX_RETRY_ATTEMPTS",
        "NOTEFLOW_RETRY_INITIAL_DELAY",
        "NOTEFLOW_RETRY_MAX_DELAY",
        "NOTEFLOW_RETRY_BACKOFF_MULTIPLIER",
        "NOTEFLOW_RETRY_JITTER",
        "ANTHROPIC_API_KEY",
        "ANTHROPIC_BASE_URL",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    return tmp_path
