"""
MelodyCompare Backend Service
FastAPI server for music copyright-risk analysis: fingerprinting, AI reports,
assistant chat, share links and the Cleared Catalog.
"""

import asyncio
import logging
import math
import secrets
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response, StreamingResponse
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from analyzer import AnalysisSynthesizer, create_synthesizer
from config import Config
from ephemeral_store import EphemeralStore, InMemoryStore
from models import (
    AssistantChatRequest,
    AudioBlob,
    BrainstormRequest,
    CatalogEntry,
    EnhancePromptRequest,
    FeedbackRequest,
    GenerateReportRequest,
    SharedAnalysisEntry,
    ShareRequest,
)
from report_generator import (
    FALLBACK_REPORT,
    ChatStream,
    ReportGenerator,
    ReportGeneratorError,
    create_report_generator,
)

# Configure logging
logging.basicConfig(
    level=Config.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Multipart bodies may carry two files plus form overhead
MULTIPART_OVERHEAD_BYTES = 1024 * 1024


# Initialize clients and stores (lazy initialization to avoid startup errors)
_shared_analyses: Optional[InMemoryStore[SharedAnalysisEntry]] = None
_catalog_entries: Optional[InMemoryStore[CatalogEntry]] = None
_audio_store: Optional[InMemoryStore[AudioBlob]] = None
_synthesizer: Optional[AnalysisSynthesizer] = None
_report_generator: Optional[ReportGenerator] = None


def get_shared_analyses() -> EphemeralStore[SharedAnalysisEntry]:
    """Get or create the shared analysis store."""
    global _shared_analyses
    if _shared_analyses is None:
        _shared_analyses = InMemoryStore("shared-analyses")
    return _shared_analyses


def get_catalog_store() -> EphemeralStore[CatalogEntry]:
    """Get or create the catalog entry store."""
    global _catalog_entries
    if _catalog_entries is None:
        _catalog_entries = InMemoryStore("catalog")
    return _catalog_entries


def get_audio_store() -> EphemeralStore[AudioBlob]:
    """Get or create the raw audio store."""
    global _audio_store
    if _audio_store is None:
        _audio_store = InMemoryStore("audio")
    return _audio_store


def get_synthesizer() -> AnalysisSynthesizer:
    """Get or create the analysis synthesizer for the configured provider."""
    global _synthesizer
    if _synthesizer is None:
        _synthesizer = create_synthesizer()
        logger.info(f"Initialized analysis synthesizer (live={_synthesizer.live})")
    return _synthesizer


def get_report_generator() -> ReportGenerator:
    """Get or create the generative-text client."""
    global _report_generator
    if _report_generator is None:
        _report_generator = create_report_generator()
    return _report_generator


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting MelodyCompare backend server on {Config.PLATFORM}...")
    # Surface missing credentials at startup instead of on the first request
    get_synthesizer()
    get_report_generator()
    yield


app = FastAPI(
    title="MelodyCompare Backend",
    description="Copyright-risk analysis for AI-generated music",
    version=Config.VERSION,
    lifespan=lifespan,
)


# Size limit middleware - runs BEFORE body parsing
class RequestSizeLimitMiddleware:
    """
    Reject oversized uploads and JSON bodies with 413.

    Declared sizes are checked from Content-Length before the body is read.
    Non-multipart bodies sent without Content-Length (chunked) are counted
    as they arrive and buffered for the app once they fit; chunked uploads
    rely on the per-file check in read_upload.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "POST":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        multipart = headers.get("content-type", "").startswith("multipart/")
        if multipart:
            limit = 2 * Config.MAX_UPLOAD_BYTES + MULTIPART_OVERHEAD_BYTES
            message = f"File exceeds {Config.MAX_UPLOAD_MB}MB limit"
        else:
            limit = Config.MAX_JSON_BYTES
            message = f"Request body exceeds {Config.MAX_JSON_MB}MB limit"

        content_length = headers.get("content-length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                size = 0
            if size > limit:
                await self._reject(scope, receive, send, size, limit, message)
                return
            await self.app(scope, receive, send)
            return

        if multipart:
            await self.app(scope, receive, send)
            return

        buffered: List[Message] = []
        received = 0
        while True:
            msg = await receive()
            buffered.append(msg)
            if msg["type"] != "http.request":
                break
            received += len(msg.get("body", b""))
            if received > limit:
                await self._reject(scope, receive, send, received, limit, message)
                return
            if not msg.get("more_body", False):
                break

        async def replay() -> Message:
            if buffered:
                return buffered.pop(0)
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(
        self, scope: Scope, receive: Receive, send: Send, size: int, limit: int, message: str
    ) -> None:
        logger.warning(f"Request too large: {size} bytes (max {limit}) on {scope['path']}")
        response = JSONResponse(status_code=413, content={"error": message})
        await response(scope, receive, send)


app.add_middleware(RequestSizeLimitMiddleware)


# CORS middleware - added last so it wraps the size limit responses too
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_origin_regex=Config.CORS_ORIGIN_REGEX,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


# Exception handlers - every JSON error is {"error": message}
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location} {first.get('msg', '')}".strip()
    else:
        message = "Invalid request."
    return JSONResponse(status_code=400, content={"error": message})


def api_error(action: str, exc: Exception) -> HTTPException:
    """Log an unexpected failure and build the generic 500 response."""
    logger.error(f"Error in {action}: {exc}", exc_info=True)
    return HTTPException(
        status_code=500, detail=f"Failed to {action}. Please check the server logs."
    )


async def read_upload(file: UploadFile) -> bytes:
    """Read an uploaded file, enforcing the per-file size cap."""
    content = await file.read()
    if len(content) > Config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413, detail=f"File exceeds {Config.MAX_UPLOAD_MB}MB limit"
        )
    return content


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def report_or_fallback(
    generator: ReportGenerator,
    analysis_data: Dict[str, Any],
    analysis_type: str,
    copyrighted_song_name: str = "",
) -> str:
    """Initial report for a fresh analysis; generator failures are not fatal here."""
    try:
        return await generator.generate_report(analysis_data, analysis_type, copyrighted_song_name)
    except ReportGeneratorError as e:
        logger.warning(f"Report generation failed, using fallback report: {e}")
        return FALLBACK_REPORT


async def store_analysis(
    store: EphemeralStore[SharedAnalysisEntry],
    analysis_data: Dict[str, Any],
    report_text: str,
    analysis_type: str,
    file_names: List[str],
) -> str:
    analysis_id = str(uuid.uuid4())
    entry: SharedAnalysisEntry = {
        "id": analysis_id,
        "analysisData": analysis_data,
        "reportText": report_text,
        "metadata": {
            "fileNames": file_names,
            "timestamp": utc_timestamp(),
            "type": analysis_type,
        },
    }
    await store.put(analysis_id, entry)
    return analysis_id


api = APIRouter(prefix="/api")


@api.get("/health")
async def health(
    synthesizer: AnalysisSynthesizer = Depends(get_synthesizer),
    generator: ReportGenerator = Depends(get_report_generator),
):
    """Liveness check with a summary of which integrations are configured."""
    return {
        "status": "ok",
        "service": "MelodyCompare Backend",
        "version": Config.VERSION,
        "platform": Config.PLATFORM,
        "fingerprintProvider": synthesizer.strategy.name,
        "liveAnalysis": synthesizer.live,
        "aiConfigured": generator.configured,
    }


@api.post("/analyze")
async def analyze(
    audioFile: Optional[UploadFile] = File(None),
    synthesizer: AnalysisSynthesizer = Depends(get_synthesizer),
    generator: ReportGenerator = Depends(get_report_generator),
    store: EphemeralStore[SharedAnalysisEntry] = Depends(get_shared_analyses),
):
    """
    Scan one uploaded track against the fingerprinting database.

    Returns:
    - analysisId: Identifier of the stored analysis
    - analysisData: AnalysisRecord
    - reportText: Markdown report (fallback text if the AI call fails)
    """
    if audioFile is None:
        raise HTTPException(status_code=400, detail="No audio file was uploaded.")
    audio_bytes = await read_upload(audioFile)

    try:
        logger.info(f"Received file for DB scan: {audioFile.filename}, Size: {len(audio_bytes)} bytes")
        record = await synthesizer.analyze_upload(audio_bytes, audioFile.filename or "")
        analysis_data = record.to_dict()

        report_text = await report_or_fallback(generator, analysis_data, "database")
        analysis_id = await store_analysis(
            store, analysis_data, report_text, "database", [audioFile.filename or ""]
        )
        return {"analysisId": analysis_id, "analysisData": analysis_data, "reportText": report_text}

    except HTTPException:
        raise
    except Exception as e:
        raise api_error("perform analysis and generate report", e)


@api.post("/compare")
async def compare(
    aiSong: Optional[UploadFile] = File(None),
    copyrightedSong: Optional[UploadFile] = File(None),
    synthesizer: AnalysisSynthesizer = Depends(get_synthesizer),
    generator: ReportGenerator = Depends(get_report_generator),
    store: EphemeralStore[SharedAnalysisEntry] = Depends(get_shared_analyses),
):
    """Compare an AI-generated song directly with an uploaded reference track."""
    if aiSong is None or copyrightedSong is None:
        raise HTTPException(
            status_code=400, detail="Both an AI song and a copyrighted song must be uploaded."
        )
    ai_song_bytes = await read_upload(aiSong)
    await read_upload(copyrightedSong)

    try:
        copyrighted_name = copyrightedSong.filename or ""
        logger.info(f"Received files for comparison: {aiSong.filename} vs {copyrighted_name}")

        record = await synthesizer.compare(ai_song_bytes, copyrighted_name)
        analysis_data = record.to_dict()

        report_text = await report_or_fallback(
            generator, analysis_data, "comparison", copyrighted_name
        )
        analysis_id = await store_analysis(
            store, analysis_data, report_text, "comparison", [aiSong.filename or "", copyrighted_name]
        )
        return {"analysisId": analysis_id, "analysisData": analysis_data, "reportText": report_text}

    except HTTPException:
        raise
    except Exception as e:
        raise api_error("perform song comparison", e)


@api.post("/share", status_code=201)
async def create_share_link(
    payload: ShareRequest,
    store: EphemeralStore[SharedAnalysisEntry] = Depends(get_shared_analyses),
):
    """Store an analysis under a short id that expires after SHARE_TTL_SECONDS."""
    if not payload.analysisData or not payload.reportText:
        raise HTTPException(
            status_code=400,
            detail="Analysis data and report text are required to create a shareable link.",
        )

    try:
        share_id = secrets.token_hex(6)
        entry: SharedAnalysisEntry = {
            "id": share_id,
            "analysisData": payload.analysisData,
            "reportText": payload.reportText,
            "metadata": {
                "fileNames": payload.fileNames,
                "timestamp": utc_timestamp(),
                "type": payload.analysisType or "shared",
            },
        }
        await store.put(share_id, entry, ttl_seconds=Config.SHARE_TTL_SECONDS)
        logger.info(f"Created shareable link with id: {share_id}")
        return {"id": share_id}

    except Exception as e:
        raise api_error("create share link", e)


@api.get("/analysis/{analysis_id}")
async def get_shared_analysis(
    analysis_id: str,
    store: EphemeralStore[SharedAnalysisEntry] = Depends(get_shared_analyses),
):
    entry = await store.get(analysis_id)
    if entry is None:
        raise HTTPException(
            status_code=404, detail="Shared analysis not found. It may have expired."
        )
    logger.info(f"Retrieved shared analysis: {analysis_id}")
    return entry


@api.post("/analysis-audio/{analysis_id}", status_code=204)
async def store_analysis_audio(
    analysis_id: str,
    audioFile: Optional[UploadFile] = File(None),
    audio_store: EphemeralStore[AudioBlob] = Depends(get_audio_store),
):
    """Keep the uploaded audio next to an analysis so shared pages can play it."""
    if audioFile is None:
        raise HTTPException(status_code=400, detail="No audio file was uploaded.")
    content = await read_upload(audioFile)

    try:
        await audio_store.put(
            analysis_id,
            {"content": content, "mimeType": audioFile.content_type or "application/octet-stream"},
        )
        logger.info(f"Stored audio for analysis ID: {analysis_id}")
        return Response(status_code=204)

    except Exception as e:
        raise api_error("store analysis audio", e)


@api.get("/audio/{audio_id}")
async def get_audio(
    audio_id: str,
    audio_store: EphemeralStore[AudioBlob] = Depends(get_audio_store),
):
    blob = await audio_store.get(audio_id)
    if blob is None:
        raise HTTPException(status_code=404, detail="Audio file not found.")
    return Response(content=blob["content"], media_type=blob["mimeType"])


@api.post("/generate-report")
async def generate_report(
    payload: GenerateReportRequest,
    generator: ReportGenerator = Depends(get_report_generator),
):
    """Regenerate the Markdown report for an existing analysis."""
    if not payload.analysisData:
        raise HTTPException(status_code=400, detail="analysisData is required.")

    try:
        report_text = await generator.generate_report(
            payload.analysisData, payload.analysisType, payload.copyrightedSongName
        )
        return {"reportText": report_text}

    except Exception as e:
        raise api_error("generate initial report", e)


async def relay_chat(stream: ChatStream, request: Request) -> AsyncIterator[str]:
    """
    Forward assistant chunks to the client.

    The upstream stream is closed when the client disconnects, when the
    server cancels this generator, or when the reply is complete.
    """
    try:
        async for text in stream:
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling assistant stream")
                break
            yield text
    except ReportGeneratorError as e:
        logger.error(f"Assistant stream failed mid-response: {e}")
    except Exception as e:
        # Headers are already sent; the client sees a truncated reply
        logger.error(f"Error in process assistant chat stream: {e}", exc_info=True)
    finally:
        await asyncio.shield(stream.aclose())


@api.post("/assistant-chat")
async def assistant_chat(
    payload: AssistantChatRequest,
    request: Request,
    generator: ReportGenerator = Depends(get_report_generator),
):
    """Stream the assistant's reply as text/plain chunks."""
    if payload.history is None or not payload.message or payload.context is None:
        raise HTTPException(status_code=400, detail="History, message, and context are required.")

    try:
        stream = await generator.open_chat_stream(
            [m.model_dump() for m in payload.history],
            payload.message,
            payload.context.model_dump(),
        )
    except Exception as e:
        raise api_error("process assistant chat stream", e)

    return StreamingResponse(relay_chat(stream, request), media_type="text/plain; charset=utf-8")


@api.post("/brainstorm")
async def brainstorm(
    payload: BrainstormRequest,
    generator: ReportGenerator = Depends(get_report_generator),
) -> List[str]:
    """Creative ideas to move a song away from its closest matches."""
    if not payload.analysisData or payload.mode is None:
        raise HTTPException(status_code=400, detail="analysisData and mode are required.")

    try:
        return await generator.brainstorm(
            payload.analysisData, payload.mode, payload.theme
        )
    except Exception as e:
        raise api_error("generate brainstorming ideas", e)


@api.post("/enhance-prompt")
async def enhance_prompt(
    payload: EnhancePromptRequest,
    generator: ReportGenerator = Depends(get_report_generator),
):
    if not payload.basePrompt:
        raise HTTPException(status_code=400, detail="basePrompt is required")

    try:
        enhanced = await generator.enhance_prompt(payload.basePrompt)
        return {"enhancedPrompt": enhanced}
    except Exception as e:
        raise api_error("enhance music prompt", e)


@api.post("/feedback", status_code=204)
async def submit_feedback(payload: FeedbackRequest):
    """Fire-and-forget feedback; recorded in the service log only."""
    if not payload.type or not payload.message:
        raise HTTPException(status_code=400, detail="Feedback type and message are required.")

    logger.info(
        f"New user feedback - type={payload.type} from={payload.email or 'Anonymous'}: {payload.message}",
        extra={"feedback_type": payload.type, "feedback_email": payload.email},
    )
    return Response(status_code=204)


def parse_risk_score(value: str) -> Union[int, float]:
    try:
        score = float(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="riskScore must be a number.")
    if not math.isfinite(score):
        raise HTTPException(status_code=400, detail="riskScore must be a number.")
    return int(score) if score.is_integer() else score


@api.post("/catalog/submit", status_code=201)
async def submit_to_catalog(
    title: Optional[str] = Form(None),
    genre: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    analysisId: Optional[str] = Form(None),
    riskScore: Optional[str] = Form(None),
    userId: Optional[str] = Form(None),
    userName: Optional[str] = Form(None),
    audioFile: Optional[UploadFile] = File(None),
    catalog: EphemeralStore[CatalogEntry] = Depends(get_catalog_store),
    audio_store: EphemeralStore[AudioBlob] = Depends(get_audio_store),
):
    """Add a cleared track to the catalog and keep its audio for playback."""
    required = (title, genre, tags, analysisId, riskScore, userId, userName)
    if audioFile is None or not all(required):
        raise HTTPException(status_code=400, detail="Missing required fields for catalog submission.")
    risk_score = parse_risk_score(riskScore)
    content = await read_upload(audioFile)

    try:
        entry_id = str(uuid.uuid4())
        entry: CatalogEntry = {
            "id": entry_id,
            "analysisId": analysisId,
            "userId": userId,
            "userName": userName,
            "title": title,
            "genre": genre,
            "tags": [t.strip() for t in tags.split(",")],
            "dateSubmitted": utc_timestamp(),
            "riskScore": risk_score,
        }

        # The catalog entry id doubles as the audio key
        await catalog.put(entry_id, entry)
        await audio_store.put(
            entry_id,
            {"content": content, "mimeType": audioFile.content_type or "application/octet-stream"},
        )
        logger.info(f'New track submitted to catalog: "{title}" (ID: {entry_id})')
        return entry

    except Exception as e:
        raise api_error("submit to catalog", e)


@api.get("/catalog/entries")
async def list_catalog_entries(
    catalog: EphemeralStore[CatalogEntry] = Depends(get_catalog_store),
):
    """Catalog entries, newest first."""
    try:
        entries = await catalog.list()
        return sorted(entries, key=lambda e: e["dateSubmitted"], reverse=True)
    except Exception as e:
        raise api_error("get catalog entries", e)


app.include_router(api)


# Built frontend: static files, with index.html for client-side routes
@app.get("/{full_path:path}", include_in_schema=False)
async def serve_frontend(full_path: str):
    if full_path == "api" or full_path.startswith("api/"):
        raise HTTPException(status_code=404, detail="Not found")

    static_root = Path(Config.STATIC_DIR).resolve()
    if not static_root.is_dir():
        raise HTTPException(status_code=404, detail="Not found")

    if full_path:
        candidate = (static_root / full_path).resolve()
        if candidate.is_file() and static_root in candidate.parents:
            return FileResponse(candidate)

    index = static_root / "index.html"
    if not index.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(index)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=Config.HOST, port=Config.PORT)
