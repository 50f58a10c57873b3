import os
from typing import Sequence

from google import genai

from checklist.logger import get_logger

logger = get_logger(__name__)

API_KEY = os.getenv("GEMINI_API_KEY", os.getenv("GOOGLE_API_KEY", "")).strip()
MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

# Returned when the photo does not match any candidate
UNKNOWN = "Unknown"

PROMPT = (
    "Identify the Squishmallow character in this image. Choose the best match "
    "from the following list of names. Respond with ONLY the character's name "
    "from the list provided. If you cannot identify a character from the list, "
    'respond with "{unknown}".\n\nList of names: {names}'
)


class RecognitionError(Exception):
    """Recognizer not configured or the model call failed."""


def build_prompt(candidate_names: Sequence[str]) -> str:
    return PROMPT.format(unknown=UNKNOWN, names=", ".join(candidate_names))


def identify(
    image_bytes: bytes,
    candidate_names: Sequence[str],
    mime_type: str = "image/jpeg",
) -> str:
    """
    Ask Gemini which of candidate_names is in the photo.

    The model's answer is only trusted when it is one of the candidates
    verbatim (after trimming); anything else comes back as UNKNOWN.
    """
    if not API_KEY:
        raise RecognitionError("Gemini API key is not configured (GEMINI_API_KEY).")
    if not image_bytes:
        raise RecognitionError("No image data to identify.")

    client = genai.Client(api_key=API_KEY)
    image_part = {"inline_data": {"mime_type": mime_type, "data": image_bytes}}

    logger.info(
        "Asking %s to identify a %d-byte image against %d names",
        MODEL,
        len(image_bytes),
        len(candidate_names),
    )
    try:
        response = client.models.generate_content(
            model=MODEL,
            contents=[image_part, build_prompt(candidate_names)],
        )
        text = (response.text or "").strip()
    except Exception as e:
        logger.error("Error identifying image with %s: %s", MODEL, e)
        raise RecognitionError("Failed to get a response from the AI model.") from e

    if text in candidate_names:
        logger.info("Recognizer answered %r", text)
        return text

    logger.info("Recognizer answer %r is not a known name; treating as %s", text, UNKNOWN)
    return UNKNOWN
