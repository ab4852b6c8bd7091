"""Ephemeral OpenAI Realtime sessions for the browser voice client.

The browser never sees the server's API key: it asks us for a session and
receives the short-lived ``client_secret`` OpenAI issues for it.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from clinicdesk.config import (
    OPENAI_BASE_URL,
    OPENAI_REALTIME_MODEL,
    OPENAI_REALTIME_VOICE,
    REQUEST_TIMEOUT_SECONDS,
    require_secret,
)
from clinicdesk.services.metrics import metrics

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS = (
    "You are a helpful AI dental receptionist assistant. You can:\n"
    "- Help patients schedule appointments\n"
    "- Answer basic questions about dental services\n"
    "- Transfer calls to appropriate staff when needed\n"
    "- Provide general information about the dental practice\n\n"
    "Be friendly, professional, and concise in your responses. If you cannot "
    "help with something, offer to transfer the call to a human staff member."
)

RECEPTIONIST_TOOLS: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "search_appointments",
        "description": "Search for available appointment slots",
        "parameters": {
            "type": "object",
            "properties": {
                "date": {"type": "string", "description": "Preferred date (YYYY-MM-DD)"},
                "time_preference": {
                    "type": "string",
                    "description": "morning, afternoon, or evening",
                },
                "service_type": {"type": "string", "description": "Type of dental service needed"},
            },
            "required": ["date"],
        },
    },
    {
        "type": "function",
        "name": "transfer_call",
        "description": "Transfer the call to a human staff member",
        "parameters": {
            "type": "object",
            "properties": {
                "reason": {"type": "string", "description": "Reason for transfer"},
                "department": {"type": "string", "description": "Specific department if known"},
            },
            "required": ["reason"],
        },
    },
]


class RealtimeSessionError(Exception):
    """OpenAI refused or failed to create a realtime session."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def build_session_payload(instructions: str | None = None, voice: str | None = None) -> dict[str, Any]:
    return {
        "model": OPENAI_REALTIME_MODEL,
        "voice": voice or OPENAI_REALTIME_VOICE,
        "instructions": instructions or DEFAULT_INSTRUCTIONS,
        "modalities": ["text", "audio"],
        "input_audio_format": "pcm16",
        "output_audio_format": "pcm16",
        "input_audio_transcription": {"model": "whisper-1"},
        "turn_detection": {
            "type": "server_vad",
            "threshold": 0.5,
            "prefix_padding_ms": 300,
            "silence_duration_ms": 1000,
        },
        "tools": RECEPTIONIST_TOOLS,
        "tool_choice": "auto",
        "temperature": 0.7,
        "max_response_output_tokens": 1000,
    }


class RealtimeSessionClient:
    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
    ):
        self._api_key = api_key or require_secret("OPENAI_API_KEY")
        self._client = http_client or httpx.Client(
            base_url=base_url or OPENAI_BASE_URL,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    def create_session(self, instructions: str | None = None, voice: str | None = None) -> dict[str, Any]:
        payload = build_session_payload(instructions, voice)
        logger.info("Creating OpenAI Realtime session with voice: %s", payload["voice"])
        with metrics.track("openai", "POST /realtime/sessions"):
            try:
                response = self._client.post(
                    "/realtime/sessions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                )
            except httpx.HTTPError as exc:
                raise RealtimeSessionError(f"OpenAI request failed: {exc}") from exc

            if response.status_code >= 400:
                logger.error("OpenAI API error: %d %s", response.status_code, response.text)
                raise RealtimeSessionError(
                    f"OpenAI API error: {response.status_code} {response.text}",
                    status_code=response.status_code,
                )
            logger.info("Realtime session created successfully")
            return response.json()
