"""
Tests for receding-limb transmission loss.
"""
import pytest

from lagk.routing.transmission_loss import TransmissionLossAdjuster


class TestTransmissionLoss:

    @pytest.fixture
    def adjuster(self):
        return TransmissionLossAdjuster(coef=0.8, level=10.0)

    def test_inactive_without_coefficient(self):
        adjuster = TransmissionLossAdjuster()
        assert not adjuster.active
        assert adjuster.calculate_loss(50.0, 100.0, 95.0) == 95.0

    def test_receding_limb_replaced(self, adjuster):
        assert adjuster.calculate_loss(50.0, 100.0, 95.0) == pytest.approx(80.0)

    def test_rising_limb_unchanged(self, adjuster):
        assert adjuster.calculate_loss(120.0, 100.0, 95.0) == 95.0
        assert adjuster.calculate_loss(100.0, 100.0, 95.0) == 95.0

    def test_candidate_above_computed_unchanged(self, adjuster):
        assert adjuster.calculate_loss(50.0, 100.0, 75.0) == 75.0
        assert adjuster.calculate_loss(50.0, 100.0, 80.0) == 80.0

    def test_candidate_at_or_below_level_unchanged(self, adjuster):
        assert adjuster.calculate_loss(5.0, 12.5, 11.0) == 11.0
        assert adjuster.calculate_loss(5.0, 10.0, 9.0) == 9.0

    def test_negative_coefficient_rejected(self):
        with pytest.raises(ValueError):
            TransmissionLossAdjuster(coef=-0.1)
