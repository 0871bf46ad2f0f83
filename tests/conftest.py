import random
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest
import soundfile as sf
from httpx import ASGITransport, AsyncClient

from analyzer import AnalysisSynthesizer
from ephemeral_store import InMemoryStore
from openrouter_fakes import completion
from report_generator import ReportGenerator
from synthetic import SyntheticAnalyzer


def write_tone(path, duration: float = 2.0, sample_rate: int = 16000):
    """Write a 440 Hz sine wave WAV file."""
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
    waveform = (0.1 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
    sf.write(path, waveform, sample_rate, subtype="PCM_16")
    return path


@pytest.fixture
def valid_audio_file(tmp_path):
    """Generate valid test audio file (2s, 16kHz, clear tone)."""
    return write_tone(tmp_path / "valid_tone.wav")


@pytest.fixture
def valid_audio_bytes(valid_audio_file):
    """Return valid audio as bytes."""
    with open(valid_audio_file, "rb") as f:
        return f.read()


@pytest.fixture
def long_audio_bytes(tmp_path):
    """~3MB WAV, larger than any single multipart read chunk."""
    path = write_tone(tmp_path / "long_tone.wav", duration=48.0, sample_rate=32000)
    with open(path, "rb") as f:
        return f.read()


@pytest.fixture
def mock_openrouter_client():
    """Mock AsyncOpenAI client for OpenRouter."""
    client = MagicMock()
    client.chat = MagicMock()
    client.chat.completions = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=completion("# Your Song Analysis Report\n\nLooks good.")
    )
    return client


@pytest.fixture
def report_generator(mock_openrouter_client):
    return ReportGenerator(api_key=None, client=mock_openrouter_client)


@pytest.fixture
def unconfigured_generator():
    """Generator without an API key."""
    return ReportGenerator(api_key=None)


@pytest.fixture
def synthesizer():
    """Synthetic-only synthesizer with a seeded random source."""
    return AnalysisSynthesizer(synthetic=SyntheticAnalyzer(random.Random(1234)))


@pytest.fixture
def stores():
    return SimpleNamespace(
        shared=InMemoryStore("shared-analyses"),
        catalog=InMemoryStore("catalog"),
        audio=InMemoryStore("audio"),
    )


@pytest.fixture
async def test_client(stores, synthesizer, report_generator):
    """
    Create test client with dependency overrides.

    Overrides:
    - Stores with fresh InMemoryStores
    - Synthesizer with a seeded synthetic one
    - Report generator with a mocked OpenRouter client
    """
    import main

    main.app.dependency_overrides[main.get_shared_analyses] = lambda: stores.shared
    main.app.dependency_overrides[main.get_catalog_store] = lambda: stores.catalog
    main.app.dependency_overrides[main.get_audio_store] = lambda: stores.audio
    main.app.dependency_overrides[main.get_synthesizer] = lambda: synthesizer
    main.app.dependency_overrides[main.get_report_generator] = lambda: report_generator

    transport = ASGITransport(app=main.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    main.app.dependency_overrides.clear()
