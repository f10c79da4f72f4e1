import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))


class UniformGeometry:
    """Straight well with constant annular and string capacities per metre."""

    def __init__(self, depth=1000.0, annulus_area=0.02, string_area=0.01, hole_id=0.3, pipe_od=0.2):
        self.depth = depth
        self.annulus_area = annulus_area
        self.string_area = string_area
        self.hole_id = hole_id
        self.pipe_od = pipe_od

    def _clip(self, top, bottom):
        return max(min(bottom, self.depth) - max(top, 0.0), 0.0)

    def volume_in_annulus_m3(self, top_md, bottom_md):
        return self._clip(top_md, bottom_md) * self.annulus_area

    def volume_in_string_m3(self, top_md, bottom_md):
        return self._clip(top_md, bottom_md) * self.string_area

    def length_for_string_volume_m(self, from_md, volume_m3):
        return min(volume_m3 / self.string_area, max(self.depth - from_md, 0.0))

    def hole_id_m(self, md):
        return self.hole_id

    def pipe_od_m(self, md):
        return self.pipe_od

    def annulus_intervals(self, top_md, bottom_md):
        top = max(top_md, 0.0)
        bottom = min(bottom_md, self.depth)
        return [(top, bottom)] if bottom > top else []


@pytest.fixture
def geometry():
    return UniformGeometry()


@pytest.fixture
def make_geometry():
    return UniformGeometry
