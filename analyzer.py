"""
Analysis Synthesizer

Selects the analysis strategy from configuration and falls back to
synthetic generation whenever an external fingerprinting call fails.
"""

import logging
import random
from typing import Optional, Protocol

from config import Config
from fingerprint import ACRCloudFingerprinter, AcoustIDFingerprinter, FingerprintError
from models import AnalysisRecord
from synthetic import SyntheticAnalyzer

logger = logging.getLogger(__name__)

PROVIDERS = ("synthetic", "acrcloud", "acoustid")


class AnalysisStrategy(Protocol):
    name: str

    async def analyze(self, audio_bytes: bytes, filename: str = "") -> AnalysisRecord:
        ...


class AnalysisSynthesizer:
    """
    Produces AnalysisRecords for uploaded audio.

    Database scans go through the configured strategy; direct comparisons
    are always synthetic.
    """

    def __init__(
        self,
        strategy: Optional[AnalysisStrategy] = None,
        synthetic: Optional[SyntheticAnalyzer] = None,
    ):
        """
        Args:
            strategy: Primary strategy (defaults to synthetic)
            synthetic: Fallback generator, also used for comparisons
        """
        self.synthetic = synthetic or SyntheticAnalyzer()
        self.strategy = strategy or self.synthetic

    @property
    def live(self) -> bool:
        """True when scans hit an external fingerprinting service."""
        return self.strategy is not self.synthetic

    async def analyze_upload(self, audio_bytes: bytes, filename: str = "") -> AnalysisRecord:
        if not self.live:
            logger.info("Processing with simulated database analysis...")
            return self.synthetic.database_scan()

        logger.info(f"Processing with live {self.strategy.name} analysis...")
        try:
            return await self.strategy.analyze(audio_bytes, filename)
        except FingerprintError as e:
            logger.warning(f"{self.strategy.name} analysis failed, using simulated analysis: {e}")
        except Exception as e:
            logger.error(
                f"Unexpected {self.strategy.name} error, using simulated analysis: {e}",
                exc_info=True,
            )
        return self.synthetic.database_scan()

    async def compare(self, ai_song_bytes: bytes, copyrighted_song_name: str) -> AnalysisRecord:
        logger.info("Processing with simulated comparison...")
        return self.synthetic.comparison(copyrighted_song_name)


def build_strategy(
    provider: Optional[str] = None, rng: Optional[random.Random] = None
) -> Optional[AnalysisStrategy]:
    """
    Build the external strategy named by FINGERPRINT_PROVIDER.

    Returns None (synthetic) when the provider is synthetic, unknown, or
    missing credentials.
    """
    provider = (provider or Config.FINGERPRINT_PROVIDER or "synthetic").lower()

    if provider not in PROVIDERS:
        logger.warning(f"Unknown FINGERPRINT_PROVIDER '{provider}' - falling back to simulated analysis")
        return None

    if provider == "acrcloud":
        if Config.ACR_HOST and Config.ACR_ACCESS_KEY and Config.ACR_ACCESS_SECRET:
            logger.info("ACRCloud credentials found. Live analysis enabled.")
            return ACRCloudFingerprinter(
                Config.ACR_HOST,
                Config.ACR_ACCESS_KEY,
                Config.ACR_ACCESS_SECRET,
                timeout=Config.FINGERPRINT_TIMEOUT,
                rng=rng,
            )
        logger.warning("ACRCloud credentials not set (ACR_HOST, ACR_ACCESS_KEY, ACR_ACCESS_SECRET) - falling back to simulated analysis")
        return None

    if provider == "acoustid":
        if Config.ACOUSTID_API_KEY:
            logger.info("AcoustID API key found. Live analysis enabled.")
            return AcoustIDFingerprinter(Config.ACOUSTID_API_KEY, rng=rng)
        logger.warning("ACOUSTID_API_KEY not set - falling back to simulated analysis")
        return None

    return None


def create_synthesizer(provider: Optional[str] = None) -> AnalysisSynthesizer:
    rng = random.Random()
    return AnalysisSynthesizer(
        strategy=build_strategy(provider, rng),
        synthetic=SyntheticAnalyzer(rng),
    )
