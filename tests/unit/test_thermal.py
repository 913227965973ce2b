"""Tests for the power-blurring thermal analyzer."""

import numpy as np
import pytest

from stackplace.design.abstraction import StackParameters
from stackplace.design.geometry import Rect
from stackplace.placement.layout import LayoutOrchestrator
from stackplace.thermal.analyzer import ThermalAnalyzer, ThermalMask


PARAMS = StackParameters(map_dim=16, mask_dim=5)


@pytest.fixture
def analyzer():
    return ThermalAnalyzer(2, 16.0, 16.0, PARAMS)


class TestThermalMask:
    """Tests for mask construction."""

    def test_kernels_normalized(self):
        mask = ThermalMask.build(3, PARAMS, 1e-12)
        assert mask.kernels.shape == (3, 5)
        np.testing.assert_allclose(mask.kernels.sum(axis=1), 1.0)

    def test_weights_rows_sum_to_one(self):
        mask = ThermalMask.build(3, PARAMS, 1e-12)
        np.testing.assert_allclose(mask.weights.sum(axis=1), 1.0)
        # Coupling only depends on die distance
        assert mask.weights[0, 1] == pytest.approx(mask.weights[2, 1])

    def test_kernels_symmetric(self):
        mask = ThermalMask.build(2, PARAMS, 1e-12)
        np.testing.assert_allclose(mask.kernels, mask.kernels[:, ::-1])


class TestPowerBinning:
    """Tests for binning block power into the grid."""

    def test_total_power(self, analyzer):
        grid = analyzer.bin_power([(0, Rect(2, 2, 4, 4), 1.0)])
        # 16 um^2 at 1 uW/um^2
        assert grid.sum() == pytest.approx(16e-6)
        assert grid.shape == analyzer.grid_shape

    def test_partial_bins(self, analyzer):
        grid = analyzer.bin_power([(1, Rect(0.5, 0.0, 1.0, 1.0), 1.0)])
        p = analyzer.pad
        assert grid[1, p, p] == pytest.approx(0.5e-6)
        assert grid[1, p, p + 1] == pytest.approx(0.5e-6)
        assert grid[0].sum() == 0

    def test_outside_outline_clipped(self, analyzer):
        grid = analyzer.bin_power([(0, Rect(14, 0, 4, 2), 1.0)])
        assert grid.sum() == pytest.approx(4e-6)

    def test_padding_stays_empty(self, analyzer):
        grid = analyzer.bin_power([(0, Rect(0, 0, 16, 16), 2.0)])
        p = analyzer.pad
        assert grid[:, :p, :].sum() == 0
        assert grid[:, :, -p:].sum() == 0


class TestAnalysis:
    """Tests for temperature estimation."""

    def test_power_conserved(self, analyzer):
        power = analyzer.bin_power([
            (0, Rect(0, 0, 3, 3), 5.0),
            (0, Rect(10, 12, 6, 4), 1.0),
            (1, Rect(4, 4, 2, 8), 3.0),
        ])
        result = analyzer.analyze_power(power)
        assert analyzer.equivalent_power(result.temperature) == pytest.approx(power.sum(), rel=1e-9)

    def test_zero_power(self, analyzer):
        result = analyzer.analyze_power(np.zeros(analyzer.grid_shape))
        assert result.peak == PARAMS.temp_offset
        assert result.mean == PARAMS.temp_offset
        assert result.cost == 0.0
        assert result.hotspots == 0

    def test_single_block_peak_inside_block(self, analyzer):
        result = analyzer.analyze_power(analyzer.bin_power([(0, Rect(6, 6, 4, 4), 10.0)]))
        die_map = result.die_maps[0]
        row, col = np.unravel_index(np.argmax(die_map), die_map.shape)
        assert 6 <= row < 10 and 6 <= col < 10
        assert result.peak > PARAMS.temp_offset
        assert result.cost > 0

    def test_linear_in_power(self, analyzer):
        low = analyzer.analyze_power(analyzer.bin_power([(0, Rect(6, 6, 4, 4), 1.0)]))
        high = analyzer.analyze_power(analyzer.bin_power([(0, Rect(6, 6, 4, 4), 2.0)]))
        offset = PARAMS.temp_offset
        assert high.peak - offset == pytest.approx(2 * (low.peak - offset))

    def test_parallel_matches_serial(self):
        power_blocks = [(0, Rect(1, 1, 5, 5), 2.0), (2, Rect(8, 8, 4, 4), 4.0)]
        serial = ThermalAnalyzer(3, 16.0, 16.0, PARAMS)
        parallel = ThermalAnalyzer(3, 16.0, 16.0, PARAMS, workers=3)
        a = serial.analyze_power(serial.bin_power(power_blocks))
        b = parallel.analyze_power(parallel.bin_power(power_blocks))
        np.testing.assert_allclose(a.temperature, b.temperature)

    def test_hotspots_counted(self):
        params = StackParameters(map_dim=16, mask_dim=5, hotspot_threshold=293.0)
        analyzer = ThermalAnalyzer(1, 16.0, 16.0, params)
        result = analyzer.analyze_power(analyzer.bin_power([(0, Rect(0, 0, 2, 2), 1.0)]))
        assert result.hotspots > 0

    def test_maps_and_layers(self, analyzer):
        result = analyzer.analyze_power(analyzer.bin_power([(1, Rect(0, 0, 4, 4), 1.0)]))
        assert result.die_maps.shape == (2, 16, 16)
        assert len(analyzer.layer_temperatures(result)) == 2
        data = result.to_dict(include_maps=True)
        assert len(data["maps"]) == 2
        assert "maps" not in result.to_dict()

    def test_analyze_layout(self, two_block_design):
        orchestrator = LayoutOrchestrator(two_block_design)
        layout = orchestrator.decode(orchestrator.initial_floorplan())
        analyzer = ThermalAnalyzer.for_design(two_block_design)
        result = analyzer.analyze(layout, two_block_design)
        assert result.total_power == pytest.approx(two_block_design.total_power())
