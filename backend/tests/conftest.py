"""
Shared fixtures for backend tests.

Geometry tests build observations by hand: FakeObservation resolves every
substring to one fixed box (or to None), which is how an OCR engine that
reports one region per token behaves.  FakeRecognizer stands in for
Tesseract so no binary is needed.
"""
import io

import pytest

from services.gig_parser import NormalizedRect


def make_box(min_x, max_x, mid_y, height):
    return NormalizedRect(
        min_x=min_x, max_x=max_x, mid_x=(min_x + max_x) / 2, mid_y=mid_y, height=height,
    )


class FakeObservation:
    def __init__(self, text, box=None):
        self.text = text
        self.box = box

    def bounding_box(self, start, end):
        return self.box


class FakeRecognizer:
    def __init__(self, observations=(), error=None):
        self.observations = list(observations)
        self.error = error
        self.calls = 0

    def recognize(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.observations)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def box():
    return make_box


@pytest.fixture
def obs():
    return FakeObservation


@pytest.fixture
def recognizer_factory():
    return FakeRecognizer


@pytest.fixture
def superscript_observations():
    """'$15' with a small '80' up and to the right (the textbook case)."""
    return [
        FakeObservation("$15", make_box(0.10, 0.20, 0.50, 0.05)),
        FakeObservation("80", make_box(0.205, 0.24, 0.58, 0.03)),
        FakeObservation("11 mi", make_box(0.10, 0.20, 0.40, 0.03)),
        FakeObservation("Oakland, CA", make_box(0.10, 0.40, 0.30, 0.03)),
    ]


@pytest.fixture
def png_bytes():
    """A tiny but real PNG."""
    from PIL import Image
    buf = io.BytesIO()
    Image.new("RGB", (40, 20), "white").save(buf, format="PNG")
    return buf.getvalue()
