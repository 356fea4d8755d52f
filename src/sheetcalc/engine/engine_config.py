"""Configuration knobs for the sheet engine.

Defaults match the standard rules. House rules may raise the iteration
budget or change the cost-reduction ceiling.
"""

from dataclasses import dataclass, field

from sheetcalc.models.fixed6 import Fixed6


@dataclass(slots=True)
class EngineConfig:
    """Tuneable parameters that aren't stored in the sheet settings."""

    max_iterations: int = 5          # Convergence passes before freezing state
    initial_points: int = 250        # Point budget for a new character
    quirk_points: int = -1           # Exact cost that marks a quirk
    max_cost_reduction: int = 80     # Percent cap on attribute cost reductions
    min_cost_factor: Fixed6 = field(default_factory=lambda: Fixed6.parse("-0.8"))
    max_modifier_reduction: int = -80  # Floor on summed advantage limitations
