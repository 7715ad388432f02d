"""Transcript retrieval for finished recording sessions.

TranscriptRetriever pulls the ordered speech segments of a session from
Recall.ai. The provider has shipped several payload shapes over time, so the
parser walks an ordered list of known locations for text, speaker and start
time instead of assuming one schema.

Retrieval never raises: a missing API key, provider errors and malformed
payloads all log a warning and yield an empty list, leaving the retry
decision to the pipeline.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from src.meetcoach.meetings.bot.recall_client import RecallClient
from src.meetcoach.meetings.schemas import TranscriptSegment

logger = structlog.get_logger(__name__)


# ── Tolerant Parsing ────────────────────────────────────────────────────────


def _item_text(item: dict) -> str:
    words = item.get("words")
    if isinstance(words, list) and words:
        joined = " ".join(
            str(w.get("text", "")) for w in words if isinstance(w, dict)
        ).strip()
        if joined:
            return joined
    for key in ("text", "transcript"):
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _item_speaker(item: dict) -> str:
    speaker = item.get("speaker")
    if isinstance(speaker, str) and speaker.strip():
        return speaker.strip()

    participant = item.get("participant")
    if isinstance(participant, dict):
        name = participant.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        participant_id = participant.get("id")
    else:
        participant_id = None

    speaker_id = item.get("speaker_id", participant_id)
    return f"Participant {speaker_id if speaker_id is not None else ''}".strip()


def _item_timestamp(item: dict) -> str:
    words = item.get("words")
    if isinstance(words, list) and words and isinstance(words[0], dict):
        first = words[0]
        if first.get("start_time") is not None:
            return f"{first['start_time']}s"
        relative = (first.get("start_timestamp") or {}).get("relative")
        if relative is not None:
            return f"{relative}s"
    if item.get("start_time") is not None:
        return str(item["start_time"])
    return datetime.now(timezone.utc).isoformat()


def parse_transcript(data: Any) -> list[TranscriptSegment]:
    """Normalize a raw provider payload into transcript segments.

    Accepts a bare list of entries or a paginated ``{"results": [...]}``
    body. Entries that are not objects, or whose text normalizes to empty,
    are dropped.
    """
    if isinstance(data, dict):
        data = data.get("results", [])
    if not isinstance(data, list):
        return []

    segments: list[TranscriptSegment] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        text = _item_text(item)
        if not text:
            continue
        segments.append(
            TranscriptSegment(
                speaker=_item_speaker(item),
                text=text,
                timestamp=_item_timestamp(item),
                is_partial=item.get("is_final") is False,
            )
        )
    return segments


# ── Retriever ───────────────────────────────────────────────────────────────


class TranscriptRetriever:
    """Fetch the transcript of a session, falling back through artifact routes.

    Args:
        client: Recall.ai REST client.
    """

    def __init__(self, client: RecallClient) -> None:
        self._client = client

    async def fetch(self, session_id: str) -> list[TranscriptSegment]:
        """Return the ordered segments of ``session_id``, or [] when unavailable."""
        if not self._client.configured:
            logger.warning("transcript.api_key_missing", session_id=session_id)
            return []

        try:
            segments = parse_transcript(await self._client.get_transcript(session_id))
        except Exception:
            logger.warning(
                "transcript.primary_route_failed",
                session_id=session_id,
                exc_info=True,
            )
            segments = []

        if segments:
            logger.info(
                "transcript.primary_route_used",
                session_id=session_id,
                segment_count=len(segments),
            )
            return segments

        try:
            segments = await self._fetch_from_recording(session_id)
            if not segments:
                logger.warning("transcript.no_data", session_id=session_id)
            return segments
        except Exception:
            logger.warning(
                "transcript.fetch_failed",
                session_id=session_id,
                exc_info=True,
            )
            return []

    async def _fetch_from_recording(self, session_id: str) -> list[TranscriptSegment]:
        """Read the transcript from the latest recording's artifacts."""
        bot = await self._client.get_bot(session_id)
        recordings = bot.get("recordings") or []
        if not recordings:
            logger.info("transcript.no_recordings", session_id=session_id)
            return []

        latest = recordings[-1]
        shortcut = (
            ((latest.get("media_shortcuts") or {}).get("transcript") or {}).get("data")
            or {}
        )
        download_url = shortcut.get("download_url")
        if download_url:
            segments = parse_transcript(await self._client.download(download_url))
            if segments:
                logger.info(
                    "transcript.download_url_used",
                    session_id=session_id,
                    segment_count=len(segments),
                )
                return segments

        recording_id = latest.get("id")
        if not recording_id:
            return []

        segments: list[TranscriptSegment] = []
        for artifact in await self._client.list_transcripts(recording_id):
            url = ((artifact.get("data") or {}).get("download_url")) or artifact.get(
                "download_url"
            )
            if not url:
                continue
            segments.extend(parse_transcript(await self._client.download(url)))

        if segments:
            logger.info(
                "transcript.recording_artifacts_used",
                session_id=session_id,
                recording_id=recording_id,
                segment_count=len(segments),
            )
        return segments
