"""Unit tests for synthetic analysis generation."""

import random

import pytest

from models import FingerprintMatch
from synthetic import (
    REFERENCE_TIMELINE,
    TIMELINE_POINTS,
    SyntheticAnalyzer,
    build_timeline,
    matched_record,
    no_match_record,
    risk_level,
)


class TestRiskLevel:
    @pytest.mark.parametrize(
        "score,expected",
        [(0, "Low"), (40, "Low"), (41, "Medium"), (75, "Medium"), (76, "High"), (100, "High")],
    )
    def test_thresholds(self, score, expected):
        assert risk_level(score) == expected


def test_build_timeline_steps_fifteen_seconds():
    timeline = build_timeline([1, 2, 3])
    assert [p.timestamp for p in timeline] == [0, 15, 30]
    assert [p.similarity for p in timeline] == [1, 2, 3]


class TestDatabaseScan:
    def test_single_simulated_match(self):
        record = SyntheticAnalyzer(random.Random(7)).database_scan()

        assert len(record.fingerprinting.matches) == 1
        match = record.fingerprinting.matches[0]
        assert match.title == "Celestial Echo (Simulated)"
        assert record.fingerprinting.highestSimilarity == match.similarity

    def test_fixed_fields(self):
        record = SyntheticAnalyzer(random.Random(7)).database_scan()

        assert record.overview.aiProbability == 94
        assert record.aiAnalysis.platform == "Suno AI"
        assert record.stemAnalysis["vocals"].similarity == 85
        assert record.stemAnalysis["drums"].similarity == 92
        assert [p.similarity for p in record.similarityTimeline] == REFERENCE_TIMELINE

    def test_risk_level_matches_score(self):
        record = SyntheticAnalyzer(random.Random(99)).database_scan()
        assert record.overview.riskLevel == risk_level(record.overview.riskScore)

    def test_seeded_runs_are_reproducible(self):
        first = SyntheticAnalyzer(random.Random(5)).database_scan()
        second = SyntheticAnalyzer(random.Random(5)).database_scan()
        assert first == second

    @pytest.mark.asyncio
    async def test_analyze_is_a_database_scan(self):
        record = await SyntheticAnalyzer(random.Random(3)).analyze(b"RIFF", "song.wav")
        assert record.fingerprinting.matches[0].title == "Celestial Echo (Simulated)"


class TestComparison:
    def test_title_strips_extension(self):
        record = SyntheticAnalyzer(random.Random(1)).comparison("My Hit.mp3")

        match = record.fingerprinting.matches[0]
        assert match.title == "My Hit"
        assert match.artist == "Uploaded Track"
        assert match.url == "#"

    @pytest.mark.parametrize(
        "name,title",
        [(".mp3", ""), ("mix.final.wav", "mix.final"), ("no_extension", "no_extension"), ("dir.v2/track", "dir.v2/track")],
    )
    def test_title_drops_only_last_extension(self, name, title):
        record = SyntheticAnalyzer(random.Random(1)).comparison(name)
        assert record.fingerprinting.matches[0].title == title

    def test_similarity_range_and_ai_detection(self):
        record = SyntheticAnalyzer(random.Random(1)).comparison("ref.wav")

        assert 50 <= record.overview.similarity <= 99
        assert record.aiAnalysis.likelihood == "Very High"
        assert len(record.similarityTimeline) == TIMELINE_POINTS


class TestMatchedRecord:
    def test_empty_matches_gives_clean_record(self):
        record = matched_record([], random.Random(2))

        assert record.overview.similarity == 0
        assert record.overview.riskLevel == "Low"
        assert record.fingerprinting.matches == []
        assert record.overview.riskScore < 15

    def test_uses_highest_match(self):
        matches = [
            FingerprintMatch(title="A", artist="X", url="u", similarity=90),
            FingerprintMatch(title="B", artist="Y", url="u", similarity=40),
        ]
        record = matched_record(matches, random.Random(2))

        assert record.overview.similarity == 90
        assert record.fingerprinting.highestSimilarity == 90
        # int(0.9 * 80) == 72, plus [0, 20)
        assert 72 <= record.overview.riskScore < 92

    def test_no_match_record_stems_low(self):
        record = no_match_record(random.Random(4))
        assert all(s.similarity < 20 for s in record.stemAnalysis.values())


def test_record_is_frozen():
    record = SyntheticAnalyzer(random.Random(1)).database_scan()
    with pytest.raises(Exception):
        record.overview.riskScore = 0
