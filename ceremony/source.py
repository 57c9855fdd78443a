# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Transcript acquisition and persistence.

Sources:
  - ``http://`` / ``https://`` : fetched with httpx (GET, JSON body)
  - ``file://``                : local path
  - anything else              : treated as a local filesystem path

The text is returned as-is; validation happens in
:func:`ceremony.transcript.normalize_transcript`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from .errors import TranscriptUnavailable

logger = logging.getLogger(__name__)

__all__ = ["load_transcript", "save_transcript"]


def _local_path(uri: str) -> Path:
    if uri.startswith("file://"):
        return Path(unquote(urlparse(uri).path))
    return Path(uri).expanduser()


def load_transcript(uri: str, *, timeout: float = 30.0) -> str:
    """Read the current ceremony transcript from ``uri``."""
    if not uri:
        raise TranscriptUnavailable("<empty>", "no transcript source given")

    scheme = urlparse(uri).scheme.lower()
    if scheme in {"http", "https"}:
        try:
            r = httpx.get(uri, timeout=timeout, follow_redirects=True, headers={"Accept": "application/json"})
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TranscriptUnavailable(uri, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise TranscriptUnavailable(uri, f"request failed: {e}") from e
        logger.info("fetched transcript from %s (%d bytes)", uri, len(r.content))
        return r.text

    path = _local_path(uri)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TranscriptUnavailable(uri, str(e)) from e
    logger.info("read transcript from %s (%d chars)", path, len(text))
    return text


def save_transcript(path: str, text: str) -> Path:
    """Write the updated transcript, creating parent directories."""
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    logger.info("wrote updated transcript to %s", p)
    return p
