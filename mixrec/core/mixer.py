"""Filter-graph construction for multi-source mixing.

This module renders FFmpeg filter-graph text that applies a per-input gain
and combines every gained stream with ``amix``.
"""

import logging
from dataclasses import dataclass

from mixrec.config import validate_gain

logger = logging.getLogger(__name__)


def format_gain(gain: float) -> str:
    """Render a gain the way FFmpeg's volume filter reads it (1.5, 0.8, 2)."""
    return format(gain, "g")


@dataclass(frozen=True)
class MixerInput:
    """One input stream of the mix.

    Attributes:
        index: FFmpeg input index (position of the device's -i argument).
        gain: Volume multiplier (0.0 to 2.0).
    """

    index: int
    gain: float = 1.0

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"Input index must be non-negative, got {self.index}")
        validate_gain(self.gain)

    @property
    def label(self) -> str:
        """Filter-graph tag carrying this input's gained output."""
        return f"a{self.index}"


class FilterGraphMixer:
    """Builds the gain + amix filter graph for several inputs.

    Each input gets its own volume stage writing to a unique tag; a single
    amix stage then consumes every tag in input order. The mix runs until
    the longest input ends, and a short dropout transition avoids clicks
    when one source stops early.

    Args:
        dropout_transition: Seconds amix takes to renormalise after an
            input ends.

    Example:
        mixer = FilterGraphMixer()
        graph = mixer.build([0.8, 1.2])
        # [0:a]volume=0.8[a0];[1:a]volume=1.2[a1];[a0][a1]amix=inputs=2:...
    """

    def __init__(self, dropout_transition: float = 2) -> None:
        self._dropout_transition = dropout_transition

    def gain_stage(self, mixer_input: MixerInput) -> str:
        return f"[{mixer_input.index}:a]volume={format_gain(mixer_input.gain)}[{mixer_input.label}]"

    def mix_stage(self, inputs: list[MixerInput]) -> str:
        labels = "".join(f"[{i.label}]" for i in inputs)
        return (
            f"{labels}amix=inputs={len(inputs)}:duration=longest"
            f":dropout_transition={format_gain(self._dropout_transition)}"
        )

    def build(self, gains: list[float]) -> str:
        """Render the complete graph for inputs 0..len(gains)-1.

        Raises:
            ValueError: If fewer than two gains are given or a gain is out of range.
        """
        if len(gains) < 2:
            raise ValueError(f"A mixing graph needs at least two inputs, got {len(gains)}")

        inputs = [MixerInput(index, gain) for index, gain in enumerate(gains)]
        stages = [self.gain_stage(i) for i in inputs]
        stages.append(self.mix_stage(inputs))
        graph = ";".join(stages)
        logger.debug("Filter graph: %s", graph)
        return graph
