"""
Audio Fingerprinting for Copyright Detection

Clients for the external fingerprinting services. Each one turns a provider
response into an AnalysisRecord:
- ACRCloud identify API (signed multipart upload over httpx)
- AcoustID lookup of a Chromaprint fingerprint (pyacoustid)
"""

import asyncio
import base64
import hashlib
import hmac
import logging
import os
import random
import tempfile
import time
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import acoustid
import httpx

from models import AnalysisRecord, FingerprintMatch
from synthetic import matched_record

logger = logging.getLogger(__name__)

ACR_IDENTIFY_PATH = "/v1/identify"

# ACRCloud status codes
ACR_STATUS_OK = 0
ACR_STATUS_NO_RESULT = 1001


class FingerprintError(Exception):
    """Raised when a fingerprinting provider fails or returns an error status."""


def search_url(title: str, artist: str) -> str:
    """YouTube search link for a matched recording."""
    return "https://youtube.com/results?search_query=" + quote(f"{title} {artist}", safe="~()*!.'")


class ACRCloudFingerprinter:
    """Identifies audio against the ACRCloud music database."""

    name = "acrcloud"

    def __init__(
        self,
        host: str,
        access_key: str,
        access_secret: str,
        timeout: float = 60.0,
        rng: Optional[random.Random] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            host: ACRCloud project host (e.g. identify-eu-west-1.acrcloud.com)
            access_key: Project access key
            access_secret: Project access secret used to sign requests
            timeout: HTTP timeout in seconds
            rng: Random source for derived scores
            transport: Optional httpx transport (tests)
        """
        self.host = host
        self.access_key = access_key
        self.access_secret = access_secret
        self.timeout = timeout
        self.rng = rng or random.Random()
        self._transport = transport

    def sign(self, timestamp: int) -> str:
        """Base64 HMAC-SHA1 signature required by the identify endpoint."""
        string_to_sign = "\n".join(
            ["POST", ACR_IDENTIFY_PATH, self.access_key, "audio", "1", str(timestamp)]
        )
        digest = hmac.new(
            self.access_secret.encode("utf-8"),
            string_to_sign.encode("utf-8"),
            hashlib.sha1,
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    async def analyze(self, audio_bytes: bytes, filename: str = "") -> AnalysisRecord:
        timestamp = int(time.time())
        data = {
            "access_key": self.access_key,
            "data_type": "audio",
            "signature_version": "1",
            "signature": self.sign(timestamp),
            "timestamp": str(timestamp),
        }
        files = {"sample": ("track.mp3", audio_bytes, "audio/mp3")}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"https://{self.host}{ACR_IDENTIFY_PATH}", data=data, files=files
                )
        except httpx.HTTPError as exc:
            raise FingerprintError(f"ACRCloud request failed: {exc}") from exc

        if response.status_code >= 400:
            raise FingerprintError(f"ACRCloud API HTTP Error: {response.status_code} {response.text}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise FingerprintError("ACRCloud returned a non-JSON response") from exc

        return self.to_analysis(payload)

    def to_analysis(self, payload: Dict[str, Any]) -> AnalysisRecord:
        """Normalize an identify response; status 1001 means no match, not an error."""
        status = payload.get("status") or {}
        code = status.get("code")
        if code not in (ACR_STATUS_OK, ACR_STATUS_NO_RESULT):
            raise FingerprintError(f"ACRCloud API Error: {status.get('msg')} (Code: {code})")

        music = (payload.get("metadata") or {}).get("music") or []
        if not music:
            logger.info("Live analysis complete: No matches found.")
        else:
            logger.info(f"Live analysis complete: Found {len(music)} match(es).")

        # ACRCloud sorts matches by score
        matches = []
        for item in music:
            title = item.get("title") or "Unknown"
            artists = [a.get("name", "") for a in item.get("artists") or [] if a.get("name")]
            first_artist = artists[0] if artists else ""
            matches.append(
                FingerprintMatch(
                    title=title,
                    artist=", ".join(artists) or "Unknown Artist",
                    url=search_url(title, first_artist),
                    similarity=int(item.get("score", 0)),
                )
            )
        return matched_record(matches, self.rng)


class AcoustIDFingerprinter:
    """Detects known recordings using Chromaprint and the AcoustID web service."""

    name = "acoustid"

    def __init__(self, api_key: str, rng: Optional[random.Random] = None):
        """
        Args:
            api_key: AcoustID application API key
            rng: Random source for derived scores
        """
        self.api_key = api_key
        self.rng = rng or random.Random()

    async def analyze(self, audio_bytes: bytes, filename: str = "") -> AnalysisRecord:
        """Spill the upload to a temp file, fingerprint it and look it up."""
        suffix = os.path.splitext(filename)[1] or ".tmp"
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as temp_file:
            temp_file.write(audio_bytes)
            temp_path = temp_file.name
        try:
            lookup = await asyncio.to_thread(self._fingerprint_and_lookup, temp_path)
        except acoustid.NoBackendError as exc:
            raise FingerprintError("Chromaprint not installed") from exc
        except acoustid.FingerprintGenerationError as exc:
            raise FingerprintError("Could not generate audio fingerprint") from exc
        except acoustid.WebServiceError as exc:
            raise FingerprintError(f"AcoustID lookup failed: {exc}") from exc
        finally:
            try:
                os.unlink(temp_path)
            except OSError:
                pass

        return matched_record(self.to_matches(lookup), self.rng)

    def _fingerprint_and_lookup(self, file_path: str) -> Dict[str, Any]:
        duration, fingerprint = acoustid.fingerprint_file(file_path)
        response = acoustid.lookup(self.api_key, fingerprint, duration, meta="recordings")
        if response.get("status") != "ok":
            error = response.get("error") or {}
            raise acoustid.WebServiceError(error.get("message", "unknown error"))
        return response

    def to_matches(self, response: Dict[str, Any]) -> List[FingerprintMatch]:
        """Flatten lookup results into matches sorted by descending score."""
        matches = []
        seen = set()
        for score, title, artist in self._iter_recordings(response.get("results", [])):
            if (title, artist) in seen:
                continue
            seen.add((title, artist))
            matches.append(
                FingerprintMatch(
                    title=title,
                    artist=artist or "Unknown Artist",
                    url=search_url(title, artist),
                    similarity=int(round(score * 100)),
                )
            )
        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.info(f"Live analysis complete: Found {len(matches)} match(es).")
        return matches

    def _iter_recordings(self, results: Iterable[Dict[str, Any]]):
        for result in results:
            score = float(result.get("score", 0.0))
            for recording in result.get("recordings") or []:
                title = recording.get("title")
                if not title:
                    continue
                artists = recording.get("artists") or [{}]
                yield score, title, artists[0].get("name", "")
