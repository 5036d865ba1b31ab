import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).parent.parent / "tools"))  # speakscore package
sys.path.append(str(Path(__file__).parent))  # fakes

from fakes import FakeMicrophone, FakeRecorder, FakeTranscriber, ManualScheduler, tone  # noqa: E402
from speakscore.audio_io import SoundFileDecoder  # noqa: E402
from speakscore.config import SessionConfig  # noqa: E402
from speakscore.session import SpeechPracticeController  # noqa: E402


@pytest.fixture
def results():
    return []


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def microphone():
    return FakeMicrophone()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def recorder():
    # 2 s of a 1 kHz tone: passes every signal gate for a short Spanish target
    return FakeRecorder(tone(seconds=2.0, freq=1000.0))


@pytest.fixture
def make_controller(microphone, transcriber, recorder, scheduler, results):
    created = []

    def _make(silence_timeout_ms=2000, hard_cap_seconds=30.0, on_result=None, **overrides):
        kwargs = dict(
            microphone=microphone,
            transcriber=transcriber,
            recorder=recorder,
            decoder=SoundFileDecoder(),
            on_result=on_result or results.append,
            config=SessionConfig(silence_timeout_ms=silence_timeout_ms, hard_cap_seconds=hard_cap_seconds),
            scheduler=scheduler,
        )
        kwargs.update(overrides)
        controller = SpeechPracticeController(**kwargs)
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        controller.close(timeout=2.0)
