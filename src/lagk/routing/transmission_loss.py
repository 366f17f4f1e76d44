"""
Receding-limb transmission loss.

On a falling hydrograph the routed outflow is capped at a fixed fraction
of the previous outflow, provided that fraction stays above a minimum flow
level.
"""
import logging

logger = logging.getLogger(__name__)


class TransmissionLossAdjuster:
    """
    Args:
        coef: Fraction of the previous outflow kept on a receding limb
            (0 disables the adjustment)
        level: Flow at or below which no loss is applied
    """

    def __init__(self, coef: float = 0.0, level: float = 0.0):
        if coef < 0:
            raise ValueError(f"Transmission loss coefficient must be non-negative, got {coef}")
        self.coef = coef
        self.level = level

    @property
    def active(self) -> bool:
        return self.coef > 0.0

    def calculate_loss(self, inflow: float, previous_outflow: float, computed_outflow: float) -> float:
        """
        Adjusted outflow for the current step.

        Args:
            inflow: Current lagged inflow
            previous_outflow: Outflow at the previous step
            computed_outflow: Outflow from storage routing

        Returns:
            ``previous_outflow * coef`` when the limb is receding and that
            value lies strictly between ``level`` and ``computed_outflow``,
            otherwise ``computed_outflow``
        """
        if not self.active or inflow >= previous_outflow:
            return computed_outflow

        candidate = previous_outflow * self.coef
        if self.level < candidate < computed_outflow:
            logger.debug(
                "Transmission loss: outflow %.4f replaced by %.4f", computed_outflow, candidate
            )
            return candidate
        return computed_outflow

    def __repr__(self) -> str:
        return f"TransmissionLossAdjuster(coef={self.coef}, level={self.level})"
