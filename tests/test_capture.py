import numpy as np

from livehost.capture import Surface, compute_source_rect, crop_frame
from livehost.models import Region


def test_same_aspect_ratio_scales_region():
    rect = compute_source_rect((2000, 1000), (1000, 500), Region(x=400, y=200, width=250, height=100))
    assert rect == (800, 400, 500, 200)


def test_letterboxed_frame_shifts_by_offset():
    # 4:1 frame inside 16:9 container: 200px bars above and below
    rect = compute_source_rect((1600, 400), (1280, 720), Region(x=0, y=200, width=640, height=160))
    assert rect == (0, 0, 800, 200)


def test_region_clamped_to_frame():
    rect = compute_source_rect((1600, 400), (1280, 720), Region(x=1200, y=200, width=200, height=100))
    assert rect == (1500, 0, 100, 125)


def test_degenerate_crop_rejected():
    assert compute_source_rect((1600, 400), (1280, 720), Region(x=0, y=200, width=8, height=100)) is None
    assert compute_source_rect((0, 0), (1280, 720), Region(x=0, y=0, width=100, height=100)) is None
    assert compute_source_rect((1920, 1080), (0, 720), Region(x=0, y=0, width=100, height=100)) is None


def test_crop_frame_draws_region_pixels():
    frame = np.zeros((500, 1000, 3), dtype=np.uint8)
    frame[100:150, 200:300] = 255
    surface = Surface()

    assert crop_frame(surface, frame, Region(x=200, y=100, width=100, height=50), (1000, 500))
    assert (surface.width, surface.height) == (100, 50)
    assert surface.pixels.min() == 255


def test_crop_frame_without_frame_is_skipped():
    surface = Surface()
    assert not crop_frame(surface, None, Region(x=0, y=0, width=100, height=100), (1280, 720))


def test_surface_encodes_jpeg():
    surface = Surface()
    surface.draw(np.full((40, 40, 3), 128, dtype=np.uint8), (0, 0, 40, 40))
    data = surface.to_jpeg(60)
    assert data[:2] == b"\xff\xd8"
