"""
Parsing of recognition-source messages into utterances.

The source speaks the streaming-recognize JSON shape::

    {"results": [{"alternatives": [{"transcript": "...", "confidence": 0.93}],
                  "isFinal": true, "languageCode": "en-us"}]}

Messages without results (keep-alives, acknowledgements) parse to ``None``.
"""

from __future__ import annotations

import json
import time
from typing import Any, Mapping, Optional, Union

from interpreter_core.core.errors import ParseError
from interpreter_core.streaming.models import Utterance


def parse_recognition_message(
    raw: Union[str, bytes, Mapping[str, Any]],
    default_language: str = "en-US",
    timestamp: Optional[float] = None,
) -> Optional[Utterance]:
    """Turn one raw message into an utterance.

    Raises:
        ParseError: if the message is not JSON or has an unexpected shape.
    """
    if isinstance(raw, Mapping):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError, UnicodeDecodeError) as e:
            raise ParseError(f"Invalid JSON from source: {e}", source="channel")

    if not isinstance(data, Mapping):
        raise ParseError(
            f"Expected a JSON object, got {type(data).__name__}",
            source="channel",
        )

    if "error" in data:
        error = data["error"]
        message = error.get("message") if isinstance(error, Mapping) else str(error)
        raise ParseError(f"Source reported error: {message}", source="channel")

    results = data.get("results")
    if not results:
        return None

    try:
        result = results[0]
        alternatives = result.get("alternatives") or []
        if not alternatives:
            return None
        best = alternatives[0]
        text = best.get("transcript", "")
        confidence = float(best.get("confidence", 0.0) or 0.0)
        is_final = bool(result.get("isFinal", False))
        language = result.get("languageCode") or default_language
        speaker = best.get("speaker") or result.get("speaker")
    except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Malformed recognition result: {e}", source="channel")

    if not isinstance(text, str):
        raise ParseError("Transcript is not a string", source="channel")

    return Utterance(
        text=text.strip(),
        is_final=is_final,
        confidence=confidence,
        language=language,
        timestamp=timestamp if timestamp is not None else time.time(),
        speaker=speaker,
    )
