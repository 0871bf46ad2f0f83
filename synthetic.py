"""
Synthetic analysis generation.

Produces AnalysisRecords from pseudo-random values inside fixed ranges. Used
when no fingerprinting provider is configured and whenever a provider call
fails. The numbers are cosmetic; only their ranges and the risk thresholds
are part of the API contract.
"""

import random
import re
from typing import Iterable, List, Optional

from models import (
    AIDetection,
    AnalysisRecord,
    FingerprintMatch,
    Fingerprinting,
    Overview,
    RiskLevel,
    StemScore,
    TimelinePoint,
)

TIMELINE_POINTS = 13
TIMELINE_STEP_SECONDS = 15

# Similarity curve shown for every matched track
REFERENCE_TIMELINE = [20, 30, 45, 85, 88, 50, 40, 92, 90, 60, 35, 25, 20]

DEFAULT_AI_DETECTION = AIDetection(confidence=94.2, platform="Suno AI", likelihood="High")
COMPARISON_AI_DETECTION = AIDetection(confidence=96.8, platform="Suno AI", likelihood="Very High")


def risk_level(risk_score: int) -> RiskLevel:
    """Map a risk score to its level: >75 High, >40 Medium, else Low."""
    if risk_score > 75:
        return "High"
    if risk_score > 40:
        return "Medium"
    return "Low"


def _rand_below(rng: random.Random, n: int) -> int:
    """Uniform integer in [0, n)."""
    return int(rng.random() * n)


def strip_extension(filename: str) -> str:
    """Drop the last extension; a bare extension such as ".mp3" becomes empty."""
    return re.sub(r"\.[^/.]+$", "", filename)


def build_timeline(similarities: Iterable[int]) -> List[TimelinePoint]:
    return [
        TimelinePoint(timestamp=i * TIMELINE_STEP_SECONDS, similarity=s)
        for i, s in enumerate(similarities)
    ]


def no_match_record(rng: Optional[random.Random] = None) -> AnalysisRecord:
    """Clean result for audio the fingerprinting service did not recognise."""
    rng = rng or random.Random()
    return AnalysisRecord(
        overview=Overview(
            similarity=0,
            aiProbability=_rand_below(rng, 20) + 5,
            riskLevel="Low",
            riskScore=_rand_below(rng, 15),
            overallScore=0,
        ),
        aiAnalysis=DEFAULT_AI_DETECTION,
        fingerprinting=Fingerprinting(matches=[], highestSimilarity=0),
        stemAnalysis={
            "vocals": StemScore(similarity=_rand_below(rng, 20), aiProbability=92),
            "drums": StemScore(similarity=_rand_below(rng, 20), aiProbability=88),
        },
        similarityTimeline=build_timeline(_rand_below(rng, 20) for _ in range(TIMELINE_POINTS)),
    )


def matched_record(
    matches: List[FingerprintMatch], rng: Optional[random.Random] = None
) -> AnalysisRecord:
    """
    Build a record around real fingerprint matches.

    Args:
        matches: Matches sorted by descending similarity (0-100)
        rng: Random source for the derived scores

    Returns:
        AnalysisRecord, or the no-match record when matches is empty
    """
    rng = rng or random.Random()
    if not matches:
        return no_match_record(rng)

    highest = matches[0].similarity
    risk_score = int((highest / 100) * 80) + _rand_below(rng, 20)
    return AnalysisRecord(
        overview=Overview(
            similarity=highest,
            aiProbability=_rand_below(rng, 40) + 50,
            riskLevel=risk_level(risk_score),
            riskScore=risk_score,
            overallScore=highest,
        ),
        aiAnalysis=DEFAULT_AI_DETECTION,
        fingerprinting=Fingerprinting(matches=list(matches), highestSimilarity=highest),
        stemAnalysis={
            "vocals": StemScore(similarity=_rand_below(rng, 50) + 40, aiProbability=92),
            "drums": StemScore(similarity=_rand_below(rng, 50) + 40, aiProbability=88),
        },
        similarityTimeline=build_timeline(REFERENCE_TIMELINE),
    )


class SyntheticAnalyzer:
    """Pseudo-random stand-in for a fingerprinting service."""

    name = "synthetic"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    async def analyze(self, audio_bytes: bytes, filename: str = "") -> AnalysisRecord:
        return self.database_scan()

    def database_scan(self) -> AnalysisRecord:
        """Simulated scan against a reference database with one candidate match."""
        similarity = _rand_below(self.rng, 80) + 10
        risk_score = _rand_below(self.rng, 80) + 10
        highest = similarity + _rand_below(self.rng, 10)

        return AnalysisRecord(
            overview=Overview(
                similarity=similarity,
                aiProbability=94,
                riskLevel=risk_level(risk_score),
                riskScore=risk_score,
                overallScore=similarity,
            ),
            aiAnalysis=DEFAULT_AI_DETECTION,
            fingerprinting=Fingerprinting(
                matches=[
                    FingerprintMatch(
                        title="Celestial Echo (Simulated)",
                        artist="Starlight Synths",
                        url="https://soundcloud.com/starlightsynths/celestial-echo",
                        similarity=highest,
                    )
                ],
                highestSimilarity=highest,
            ),
            stemAnalysis={
                "vocals": StemScore(similarity=85, aiProbability=92),
                "drums": StemScore(similarity=92, aiProbability=88),
            },
            similarityTimeline=build_timeline(REFERENCE_TIMELINE),
        )

    def comparison(self, copyrighted_song_name: str) -> AnalysisRecord:
        """
        Simulated direct comparison against a user-supplied reference track.

        Similarity is skewed high (50-99) and the timeline peaks mid-song.
        """
        similarity = _rand_below(self.rng, 50) + 50
        risk_score = int(similarity * 0.8) + _rand_below(self.rng, 20)
        title = strip_extension(copyrighted_song_name)

        timeline = []
        for i in range(TIMELINE_POINTS):
            jitter = (self.rng.random() - 0.5) * 20
            value = round(similarity * (1 - abs(i - 6) / 6) + jitter)
            timeline.append(max(0, min(100, value)))

        return AnalysisRecord(
            overview=Overview(
                similarity=similarity,
                aiProbability=_rand_below(self.rng, 20) + 75,
                riskLevel=risk_level(risk_score),
                riskScore=risk_score,
                overallScore=similarity,
            ),
            aiAnalysis=COMPARISON_AI_DETECTION,
            fingerprinting=Fingerprinting(
                matches=[
                    FingerprintMatch(
                        title=title,
                        artist="Uploaded Track",
                        url="#",
                        similarity=similarity,
                    )
                ],
                highestSimilarity=similarity,
            ),
            stemAnalysis={
                "vocals": StemScore(similarity=_rand_below(self.rng, 40) + 55, aiProbability=94),
                "drums": StemScore(similarity=_rand_below(self.rng, 40) + 58, aiProbability=91),
            },
            similarityTimeline=build_timeline(timeline),
        )
