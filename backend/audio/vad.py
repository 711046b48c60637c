"""
Lightweight energy-based silence detection for capture blocks.

The capture pipeline drops whole raw blocks whose peak amplitude stays
below a threshold before they are buffered, so pure silence is never sent
to the transcription endpoint.
"""
import numpy as np

from audio.pcm import peak_amplitude
from spec import CAPTURE_SILENCE_PEAK_THRESHOLD


class PeakSilenceDetector:
    """
    Peak-amplitude silence detector.

    A block is silent when every sample's absolute value is below the
    threshold (full scale = 1.0). Keeps counters for observability.
    """
    def __init__(self, threshold: float = CAPTURE_SILENCE_PEAK_THRESHOLD):
        if threshold < 0:
            raise ValueError("threshold must be >= 0")
        self._threshold = threshold
        self.silent_blocks = 0
        self.voiced_blocks = 0

    @property
    def threshold(self) -> float:
        return self._threshold

    def is_silent(self, f32: np.ndarray) -> bool:
        """
        Observe one raw block and report whether it is silence.

        Args:
            f32: 1D float32 samples in [-1.0, 1.0].
        """
        silent = peak_amplitude(f32) < self._threshold
        if silent:
            self.silent_blocks += 1
        else:
            self.voiced_blocks += 1
        return silent
