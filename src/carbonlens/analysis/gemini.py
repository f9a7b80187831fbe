"""
Gemini Analyzer
===============

Production analyzer backed by Google Gemini through the google-genai SDK.

This analyzer:
    - Sends a labelled grid (or the ordered frames) with a fixed prompt
    - Runs the blocking SDK call off the event loop
    - Spaces calls at least ``min_interval_seconds`` apart
    - Parses the reply strictly; anything unusable is AnalyzerUnavailable

Design Rules:
    - Fail fast at call time when the API key is missing
    - Never retry a failed call (the batch is marked failed instead)
    - Log every call and every failure
"""

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from google import genai
from google.genai import types

from carbonlens.analysis.engine import (
    REFERENCE_DAILY_CO2_KG,
    AnalyzerUnavailable,
    MissingCredential,
    parse_analysis_text,
)
from carbonlens.models.analysis import AnalysisResult


logger = logging.getLogger(__name__)


DEFAULT_MODEL = "gemini-2.0-flash"

CARBON_RATES = """Carbon rates per activity:
- Driving car: 0.17 kg CO2 per km
- Bus/Train: 0.06 kg CO2 per km
- Walking/Biking: 0 kg CO2
- Plastic bottle: 0.08 kg CO2 each
- Beef meal: 2.50 kg CO2 each
- Other meal: 1.50 kg CO2 each"""

RESPONSE_FORMAT = (
    'Respond with JSON only:\n'
    '{"summary":"describe what you see","activities":[{"activity":"Driving",'
    '"estimatedQuantity":"~5km","co2Kg":0.85}],"totalCO2Kg":0.85}'
)

GRID_PROMPT = f"""Look at this 3x4 grid of 12 frames. List ONLY what you literally see.

CRITICAL: Do NOT invent, assume, or hallucinate activities. If you only see driving, the activities array should ONLY contain driving. Do NOT add food, drinks, or other items unless they are PHYSICALLY VISIBLE in the frames.

{CARBON_RATES}

{RESPONSE_FORMAT}"""

FRAMES_PROMPT = f"""The images above are consecutive frames from one recording, each preceded by its capture time. List ONLY what you literally see.

CRITICAL: Do NOT invent, assume, or hallucinate activities. Do NOT add food, drinks, or other items unless they are PHYSICALLY VISIBLE in the frames.

{CARBON_RATES}

{RESPONSE_FORMAT}"""


class GeminiAnalyzer:
    """
    Analyzer using the Gemini generateContent API.

    Attributes:
        model: Gemini model name
        temperature: Sampling temperature (0 for repeatable replies)
        min_interval_seconds: Minimum spacing between calls
        call_count: Successful calls made
        error_count: Failed calls
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.0,
        min_interval_seconds: float = 1.0,
        reference_daily_co2_kg: float = REFERENCE_DAILY_CO2_KG,
    ) -> None:
        """
        Initialize Gemini analyzer.

        The client is created lazily on first use, so a missing key is
        reported per request rather than at startup.

        Args:
            api_key: Gemini API key (GEMINI_API_KEY)
            model: Model name
            temperature: Sampling temperature
            min_interval_seconds: Minimum delay between API calls
            reference_daily_co2_kg: Score normalisation constant
        """
        self._api_key = api_key
        self.model = model
        self.temperature = temperature
        self.min_interval_seconds = min_interval_seconds
        self.reference_daily_co2_kg = reference_daily_co2_kg

        self._client: Optional[genai.Client] = None
        self._rate_lock = asyncio.Lock()
        self._last_call_time: float = 0.0

        self.call_count: int = 0
        self.error_count: int = 0

        logger.info(
            f"GeminiAnalyzer initialized: model={model}, "
            f"min_interval={min_interval_seconds}s, "
            f"credential={'set' if api_key else 'missing'}"
        )

    @property
    def has_credential(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> genai.Client:
        if not self._api_key:
            raise MissingCredential("GEMINI_API_KEY not set")
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def analyze_grid(
        self,
        image: bytes,
        start_time: str,
        end_time: str,
        mime_type: str = "image/jpeg",
    ) -> AnalysisResult:
        """
        Analyze one composed grid.

        Raises:
            MissingCredential: If no API key is configured
            AnalyzerUnavailable: If the call fails or the reply is unusable
        """
        contents = [
            types.Part.from_bytes(data=image, mime_type=mime_type),
            GRID_PROMPT,
        ]
        text = await self._generate(contents)
        return parse_analysis_text(text, start_time, end_time, self.reference_daily_co2_kg)

    async def analyze_frames(
        self,
        images: Sequence[bytes],
        timestamps: Sequence[str],
    ) -> AnalysisResult:
        """Analyze the ordered original frames of a batch."""
        if not images:
            raise AnalyzerUnavailable("No frames provided")

        contents: List = []
        for index, (image, timestamp) in enumerate(zip(images, timestamps)):
            contents.append(f"Frame {index + 1} at {timestamp}:")
            contents.append(types.Part.from_bytes(data=image, mime_type="image/jpeg"))
        contents.append(FRAMES_PROMPT)

        text = await self._generate(contents)
        return parse_analysis_text(
            text, timestamps[0], timestamps[-1], self.reference_daily_co2_kg
        )

    async def _generate(self, contents: List) -> str:
        client = self._get_client()

        async with self._rate_lock:
            elapsed = time.time() - self._last_call_time
            if elapsed < self.min_interval_seconds:
                await asyncio.sleep(self.min_interval_seconds - elapsed)

            try:
                response = await asyncio.to_thread(
                    client.models.generate_content,
                    model=self.model,
                    contents=contents,
                    config=types.GenerateContentConfig(temperature=self.temperature),
                )
            except Exception as e:
                self.error_count += 1
                logger.error(
                    f"Gemini request failed: {e}. Total errors: {self.error_count}"
                )
                raise AnalyzerUnavailable(f"Gemini request failed: {e}")
            finally:
                self._last_call_time = time.time()

        self.call_count += 1
        text = response.text or ""
        logger.debug(f"Gemini reply ({len(text)} chars): {text[:200]!r}")
        return text

    def get_metrics(self) -> dict:
        """Get analyzer metrics for observability."""
        return {
            "backend": "gemini",
            "model": self.model,
            "credential_set": self.has_credential,
            "call_count": self.call_count,
            "error_count": self.error_count,
            "min_interval_seconds": self.min_interval_seconds,
        }
