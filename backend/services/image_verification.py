"""Image authenticity checks for citizen reports.

``verify(image_url)`` always returns ``{status, confidence, reason}`` with
status in pending|verified|rejected and confidence in [0, 1]. Callers never
see an exception from this module.
"""

import asyncio
import logging
import random
from typing import Protocol

from services.foundry_client import complete, parse_json_reply

logger = logging.getLogger(__name__)

STATUSES = {"pending", "verified", "rejected"}

UNAVAILABLE = {
    "status": "pending",
    "confidence": 0.0,
    "reason": "Verification service temporarily unavailable",
}

CANNED_RESULTS = [
    {"status": "verified", "confidence": 0.95, "reason": "Image shows consistent flood damage patterns"},
    {"status": "verified", "confidence": 0.87, "reason": "Metadata and visual elements appear authentic"},
    {"status": "rejected", "confidence": 0.23, "reason": "Image appears to be digitally manipulated"},
    {"status": "pending", "confidence": 0.65, "reason": "Requires manual review - inconclusive automated analysis"},
]

VERIFICATION_PROMPT = (
    "You review photos submitted with disaster reports. Decide whether the image "
    "looks like an authentic, unedited photo of disaster conditions. "
    "Respond in JSON: "
    '{"status": "verified|rejected|pending", "confidence": 0.0-1.0, "reason": "one sentence"}. '
    "Use pending when you cannot tell."
)


class ImageVerifier(Protocol):
    name: str

    async def verify(self, image_url: str) -> dict: ...


class MockImageVerifier:
    """Demo verifier: returns one of a few canned verdicts."""

    name = "mock"

    def __init__(self, rng: random.Random | None = None, delay_seconds: float = 0.0):
        self._rng = rng or random.Random()
        self._delay = delay_seconds

    async def verify(self, image_url: str) -> dict:
        if self._delay:
            await asyncio.sleep(self._delay)
        result = dict(self._rng.choice(CANNED_RESULTS))
        logger.info("Image verification result: %s (confidence: %s)", result["status"], result["confidence"])
        return result


class FoundryImageVerifier:
    """Vision-model verifier. Any failure degrades to a pending verdict."""

    name = "foundry"

    def __init__(self, timeout_seconds: float = 5.0):
        self._timeout = timeout_seconds

    async def verify(self, image_url: str) -> dict:
        try:
            reply = await asyncio.wait_for(
                asyncio.to_thread(
                    complete,
                    messages=[
                        {"role": "system", "content": VERIFICATION_PROMPT},
                        {
                            "role": "user",
                            "content": [
                                {"type": "text", "text": "Verify this report image."},
                                {"type": "image_url", "image_url": {"url": image_url}},
                            ],
                        },
                    ],
                    max_tokens=150,
                ),
                self._timeout,
            )
            return normalize_verdict(parse_json_reply(reply))
        except Exception as e:
            logger.warning("Image verification failed for %s: %s", image_url, e)
            return dict(UNAVAILABLE)


def normalize_verdict(raw: dict) -> dict:
    """Coerce a model verdict into the allowed status set and confidence range."""
    status = str(raw.get("status", "pending")).lower()
    if status not in STATUSES:
        status = "pending"

    try:
        confidence = float(raw.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0
    confidence = min(max(confidence, 0.0), 1.0)

    reason = str(raw.get("reason") or "No reason given")
    return {"status": status, "confidence": round(confidence, 2), "reason": reason}
