"""
Type models for copyright-risk analysis.

Analysis records are frozen pydantic models so a produced result cannot be
altered on its way to the report generator or the client. Stored entries
are plain TypedDicts, the same shape that goes over the wire.
"""

from typing import Any, Dict, List, Literal, Optional, TypedDict, Union

from pydantic import BaseModel, ConfigDict, Field


RiskLevel = Literal["Low", "Medium", "High"]
AnalysisType = Literal["database", "comparison"]
EntryType = Literal["database", "comparison", "shared"]
BrainstormMode = Literal["titles", "lyrics", "chords"]


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class Overview(FrozenModel):
    similarity: int
    aiProbability: int
    riskLevel: RiskLevel
    riskScore: int
    overallScore: int


class AIDetection(FrozenModel):
    confidence: float
    platform: str
    likelihood: str


class FingerprintMatch(FrozenModel):
    title: str
    artist: str
    url: str
    similarity: int


class Fingerprinting(FrozenModel):
    matches: List[FingerprintMatch]
    highestSimilarity: int


class StemScore(FrozenModel):
    similarity: int
    aiProbability: int


class TimelinePoint(FrozenModel):
    timestamp: int
    similarity: int


class AnalysisRecord(FrozenModel):
    """Fixed-shape analysis result returned to clients and fed to reports."""

    overview: Overview
    aiAnalysis: AIDetection
    fingerprinting: Fingerprinting
    stemAnalysis: Dict[str, StemScore]
    similarityTimeline: List[TimelinePoint]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class SharedAnalysisMetadata(TypedDict):
    fileNames: List[str]
    timestamp: str
    type: EntryType


class SharedAnalysisEntry(TypedDict):
    id: str
    analysisData: Dict[str, Any]
    reportText: str
    metadata: SharedAnalysisMetadata


class CatalogEntry(TypedDict):
    id: str
    analysisId: str
    userId: str
    userName: str
    title: str
    genre: str
    tags: List[str]
    dateSubmitted: str
    riskScore: Union[int, float]


class AudioBlob(TypedDict):
    content: bytes
    mimeType: str


# Pydantic models for API requests

class ShareRequest(BaseModel):
    analysisData: Optional[Dict[str, Any]] = None
    reportText: Optional[str] = None
    # Unset for links shared without a known origin
    analysisType: Optional[AnalysisType] = None
    fileNames: List[str] = Field(default_factory=list)


class GenerateReportRequest(BaseModel):
    analysisData: Optional[Dict[str, Any]] = None
    analysisType: AnalysisType = "database"
    copyrightedSongName: str = ""


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatContext(BaseModel):
    """UI context the assistant uses to pick its system instruction."""

    appState: Optional[str] = None
    analysisData: Optional[Dict[str, Any]] = None


class AssistantChatRequest(BaseModel):
    history: Optional[List[ChatMessage]] = None
    message: Optional[str] = None
    context: Optional[ChatContext] = None


class BrainstormRequest(BaseModel):
    analysisData: Optional[Dict[str, Any]] = None
    mode: Optional[BrainstormMode] = None
    theme: Optional[str] = None


class EnhancePromptRequest(BaseModel):
    basePrompt: Optional[str] = None


class FeedbackRequest(BaseModel):
    type: Optional[str] = None
    message: Optional[str] = None
    email: Optional[str] = None
