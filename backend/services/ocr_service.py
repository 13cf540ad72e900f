"""
OCR Service — runs text recognition on a gig-offer screenshot and hands the
observations to gig_parser for pay / miles / pickup extraction.

Tesseract is the default recogniser.  Its word boxes are grouped into line
observations that can answer "where is text[start:end]?", which is what the
geometric price tier needs to reunite superscript cents with their dollars.
Any recogniser failure degrades to "no text found" so the caller always gets
a Parsed value back, never an exception.
"""
import asyncio
import io
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from services.gig_parser import NormalizedRect, Parsed, RecognizedObservation, parse_observations

logger = logging.getLogger("gigcheck.ocr")

TESSERACT_LANG = os.environ.get("TESSERACT_LANG", "eng")
TESSERACT_PSM = os.environ.get("TESSERACT_PSM", "11")   # sparse text keeps cents separate
TESSERACT_CMD = os.environ.get("TESSERACT_CMD", "")

try:
    import pytesseract
    from PIL import Image, ImageEnhance, ImageFilter, ImageOps
    OCR_AVAILABLE = True
    if TESSERACT_CMD:
        pytesseract.pytesseract.tesseract_cmd = TESSERACT_CMD
except ImportError:
    OCR_AVAILABLE = False
    logger.warning("pytesseract/Pillow not available — OCR disabled")

# Register HEIC/HEIF support via pillow-heif if available
try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
    HEIF_AVAILABLE = True
except ImportError:
    HEIF_AVAILABLE = False
    logger.info("pillow-heif not installed — HEIC screenshots will not be supported")


# ── Observations ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class WordBox:
    """One recognised word: its span in the line text and its normalised box."""
    start: int
    end: int
    min_x: float
    min_y: float
    max_x: float
    max_y: float


@dataclass(frozen=True)
class WordBoxObservation:
    """
    A line of text with per-word geometry.  Substring boxes are the union of
    the words they touch; a partially covered word is cut horizontally in
    proportion to the characters covered.
    """
    text: str
    words: tuple[WordBox, ...] = ()

    def bounding_box(self, start: int, end: int) -> Optional[NormalizedRect]:
        if start >= end or start < 0 or end > len(self.text):
            return None

        xs: list[float] = []
        ys: list[float] = []
        for w in self.words:
            if w.end <= start or w.start >= end or w.end <= w.start:
                continue
            n = w.end - w.start
            a = (max(start, w.start) - w.start) / n
            b = (min(end, w.end) - w.start) / n
            width = w.max_x - w.min_x
            xs += [w.min_x + width * a, w.min_x + width * b]
            ys += [w.min_y, w.max_y]

        if not xs:
            return None
        return NormalizedRect.from_bounds(min(xs), min(ys), max(xs), max(ys))


@dataclass(frozen=True)
class TextOnlyObservation:
    """Text with no geometry; the geometric tier always misses on these."""
    text: str

    def bounding_box(self, start: int, end: int) -> Optional[NormalizedRect]:
        return None


def observations_from_text(text: str) -> list[TextOnlyObservation]:
    return [TextOnlyObservation(line) for line in text.split("\n")]


# ── Recognition ───────────────────────────────────────────────────────────────

DEFAULT_CUSTOM_WORDS = ("mi", "Roadie", "Support", "Available", "Gig", "CA", "Oakland")


@dataclass(frozen=True)
class RecognitionConfig:
    accurate: bool = True
    language_correction: bool = True
    minimum_text_height: float = 0.015   # fraction of image height
    custom_words: tuple[str, ...] = field(default=DEFAULT_CUSTOM_WORDS)


class TextRecognizer(Protocol):
    def recognize(self, image) -> list[RecognizedObservation]:
        ...


def preprocess_image(image: "Image.Image") -> "Image.Image":
    """
    Improve OCR accuracy on app screenshots:
    - Convert to grayscale
    - Upscale if small (superscript cents are only a few pixels tall)
    - Invert dark-mode bands so light-on-dark text becomes dark-on-light
    - Enhance contrast and sharpen
    """
    import numpy as np

    img = image.convert("L")

    w, h = img.size
    if w < 800:
        scale = 800 / w
        img = img.resize((int(w * scale), int(h * scale)), Image.LANCZOS)

    # ── Invert dark-background stripes ────────────────────────────────────────
    # Dark-mode gig apps render white text on near-black cards.  Scan in
    # horizontal bands and invert any band whose mean is below 80.
    arr = np.array(img)
    band_height = max(1, arr.shape[0] // 40)
    for y in range(0, arr.shape[0], band_height):
        band = arr[y:y + band_height, :]
        if band.mean() < 80:
            arr[y:y + band_height, :] = 255 - band
    img = Image.fromarray(arr)

    img = ImageEnhance.Contrast(img).enhance(2.0)
    img = img.filter(ImageFilter.SHARPEN)
    return img


def build_tesseract_config(config: RecognitionConfig, user_words_path: Optional[str] = None) -> str:
    parts = [f"--oem {1 if config.accurate else 3}", f"--psm {TESSERACT_PSM}"]
    if not config.language_correction:
        parts += ["-c load_system_dawg=0", "-c load_freq_dawg=0"]
    if user_words_path:
        parts.append(f"--user-words {user_words_path}")
    return " ".join(parts)


def observations_from_tesseract(
    data: dict,
    image_width: int,
    image_height: int,
    minimum_text_height: float = 0.0,
) -> list[WordBoxObservation]:
    """
    Group an `image_to_data` DICT into one observation per (block, par, line).
    Words shorter than `minimum_text_height` × image height are dropped.
    """
    lines: dict[tuple[int, int, int], list[tuple[str, NormalizedRect]]] = {}
    min_px = minimum_text_height * image_height

    for i, raw in enumerate(data.get("text", [])):
        word = (raw or "").strip()
        if not word:
            continue
        height = float(data["height"][i])
        if height < min_px:
            continue
        rect = NormalizedRect.from_pixels(
            float(data["left"][i]), float(data["top"][i]),
            float(data["width"][i]), height,
            image_width, image_height,
        )
        key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
        lines.setdefault(key, []).append((word, rect))

    observations = []
    for words in lines.values():
        text = ""
        boxes = []
        for word, rect in words:
            if text:
                text += " "
            start = len(text)
            text += word
            boxes.append(WordBox(
                start=start, end=len(text),
                min_x=rect.min_x, min_y=rect.min_y, max_x=rect.max_x, max_y=rect.max_y,
            ))
        observations.append(WordBoxObservation(text=text, words=tuple(boxes)))
    return observations


class TesseractRecognizer:
    def __init__(self, config: Optional[RecognitionConfig] = None, lang: str = TESSERACT_LANG):
        self.config = config or RecognitionConfig()
        self.lang = lang

    def recognize(self, image: "Image.Image") -> list[WordBoxObservation]:
        if not OCR_AVAILABLE:
            raise RuntimeError("OCR dependencies not installed (pytesseract, Pillow)")

        processed = preprocess_image(image)
        width, height = processed.size

        user_words_path = None
        if self.config.custom_words:
            with tempfile.NamedTemporaryFile("w", suffix=".user-words", delete=False) as fh:
                fh.write("\n".join(self.config.custom_words) + "\n")
                user_words_path = fh.name
        try:
            data = pytesseract.image_to_data(
                processed,
                lang=self.lang,
                config=build_tesseract_config(self.config, user_words_path),
                output_type=pytesseract.Output.DICT,
            )
        finally:
            if user_words_path and os.path.exists(user_words_path):
                os.remove(user_words_path)

        return observations_from_tesseract(
            data, width, height, minimum_text_height=self.config.minimum_text_height
        )


def decode_image(image_bytes: bytes) -> Optional["Image.Image"]:
    """Open, EXIF-orient and fully load an image.  None when it can't be decoded."""
    if not image_bytes or not OCR_AVAILABLE:
        return None
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image = ImageOps.exif_transpose(image)
        # Convert HEIF/palette/CMYK modes → RGB for Tesseract compatibility
        if image.mode not in ("RGB", "L", "RGBA"):
            image = image.convert("RGB")
        image.load()
    except Exception as e:
        logger.warning("Cannot decode image (%d bytes): %s", len(image_bytes), e)
        return None
    return image


def recognize_safely(recognizer: TextRecognizer, image) -> list[RecognizedObservation]:
    """Recogniser faults are indistinguishable from "no text found"."""
    try:
        return list(recognizer.recognize(image) or [])
    except Exception as e:
        logger.warning("Text recognition failed (%s): %s", type(e).__name__, e)
        return []


# ── Orchestration ─────────────────────────────────────────────────────────────

async def parse_image(image_bytes: bytes, recognizer: Optional[TextRecognizer] = None) -> Parsed:
    """
    Decode and recognise on worker threads, then extract.  An undecodable
    image short-circuits to an empty Parsed without touching the recogniser.
    """
    image = await asyncio.to_thread(decode_image, image_bytes)
    if image is None:
        return Parsed.empty()

    recognizer = recognizer or TesseractRecognizer()
    observations = await asyncio.to_thread(recognize_safely, recognizer, image)
    parsed = parse_observations(observations)
    logger.info(
        "Parsed %d observations: pay=%s miles=%s pickup=%r",
        len(observations), parsed.pay_usd, parsed.gig_miles, parsed.pickup_query,
    )
    return parsed


def start_parse(
    image_bytes: bytes,
    completion: Optional[Callable[[Parsed], None]] = None,
    recognizer: Optional[TextRecognizer] = None,
) -> "asyncio.Task[Parsed]":
    """
    Schedule a parse on the running loop and return the task so the caller
    can await or cancel it.  `completion` fires on the loop once the task
    finishes (not when cancelled).  Overlapping calls are not coalesced.
    """
    task = asyncio.create_task(parse_image(image_bytes, recognizer))

    if completion is not None:
        def _done(t: "asyncio.Task[Parsed]") -> None:
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.warning("Parse task failed: %s", exc)
                return
            completion(t.result())

        task.add_done_callback(_done)
    return task


def get_recognizer() -> TextRecognizer:
    """Dependency: the recogniser used by the upload route."""
    return TesseractRecognizer()


# ── Health ────────────────────────────────────────────────────────────────────

def ocr_health() -> dict:
    """
    What screenshot parsing needs from the host:
    - the Tesseract binary the recogniser will call (TESSERACT_CMD or PATH)
    - traineddata for every language in TESSERACT_LANG
    - pillow-heif, since iPhone screenshots are often shared as HEIC
    Runs subprocesses; call it off the event loop.
    """
    if not OCR_AVAILABLE:
        return {"pytesseract": {"ok": False, "error": "pytesseract/Pillow not installed"}}

    checks = {"pytesseract": {"ok": True}}
    cmd = pytesseract.pytesseract.tesseract_cmd

    try:
        checks["tesseract"] = {"ok": True, "version": str(pytesseract.get_tesseract_version()), "cmd": cmd}
    except (pytesseract.TesseractNotFoundError, OSError) as e:
        checks["tesseract"] = {"ok": False, "error": f"tesseract not runnable as {cmd!r}: {e}"}

    try:
        installed = set(pytesseract.get_languages(config=""))
        missing = [lang for lang in TESSERACT_LANG.split("+") if lang not in installed]
        checks["language"] = {"ok": not missing, "lang": TESSERACT_LANG}
        if missing:
            checks["language"]["error"] = f"missing traineddata: {', '.join(missing)}"
    except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError, OSError) as e:
        checks["language"] = {"ok": False, "lang": TESSERACT_LANG, "error": str(e)}

    checks["heic_support"] = {"ok": HEIF_AVAILABLE}
    if not HEIF_AVAILABLE:
        checks["heic_support"]["error"] = "pillow-heif not installed; HEIC screenshots unsupported"
    return checks
