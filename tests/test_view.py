from __future__ import annotations

import dataclasses

import pytest

from mandelview import Command, ViewState, apply_command
from mandelview.view import PAN_STEP


def test_defaults_start_dirty() -> None:
    view = ViewState()

    assert view.max_iterations == 200
    assert view.zoom == 3.0
    assert view.offset == complex(-0.5, 0.0)
    assert (view.width, view.height) == (800, 800)
    assert view.changed
    assert view.resized


def test_pan_step_scales_with_zoom() -> None:
    view = ViewState(zoom=0.5, offset=0j)

    view.pan("right")
    assert view.offset == complex(PAN_STEP * 0.5, 0.0)

    view.zoom_in()
    view.pan("down")
    assert view.offset.imag == PAN_STEP * 0.25


@pytest.mark.parametrize(
    ("direction", "sign_re", "sign_im"),
    [("left", -1, 0), ("right", 1, 0), ("up", 0, -1), ("down", 0, 1)],
)
def test_pan_directions(direction: str, sign_re: int, sign_im: int) -> None:
    view = ViewState(offset=0j)

    view.pan(direction)

    step = PAN_STEP * view.zoom
    assert view.offset == complex(sign_re * step, sign_im * step)
    assert view.changed


def test_pan_right_then_left_restores_offset() -> None:
    view = ViewState()
    start = view.offset

    view.pan("right")
    view.pan("left")
    view.pan("up")
    view.pan("down")

    assert view.offset == start


def test_zoom_in_then_out_restores_zoom() -> None:
    view = ViewState(zoom=3.0)

    view.zoom_in()
    assert view.zoom == 1.5
    view.zoom_out()

    assert view.zoom == 3.0


def test_resize_marks_changed_and_resized() -> None:
    view = ViewState(width=10, height=10)
    view._mark_rendered()
    assert not view.changed and not view.resized

    view.resize(20, 5)

    assert (view.width, view.height) == (20, 5)
    assert view.changed
    assert view.resized


def test_pan_and_zoom_do_not_mark_resized() -> None:
    view = ViewState()
    view._mark_rendered()

    view.pan("left")
    view.zoom_out()

    assert view.changed
    assert not view.resized


@pytest.mark.parametrize("size", [(0, 10), (10, 0), (-1, 4)])
def test_resize_rejects_empty_viewport(size: tuple[int, int]) -> None:
    view = ViewState()

    with pytest.raises(ValueError):
        view.resize(*size)


def test_constructor_validates_configuration() -> None:
    with pytest.raises(ValueError):
        ViewState(max_iterations=0)
    with pytest.raises(ValueError):
        ViewState(zoom=0.0)
    with pytest.raises(ValueError):
        ViewState(width=0)


def test_unknown_pan_direction() -> None:
    with pytest.raises(ValueError):
        ViewState().pan("sideways")


def test_flags_cannot_be_assigned() -> None:
    view = ViewState()

    with pytest.raises(AttributeError):
        view.changed = False  # type: ignore[misc]


def test_snapshot_is_frozen_copy() -> None:
    view = ViewState(width=4, height=2)
    params = view.snapshot()

    view.zoom_in()

    assert params.zoom == 3.0
    assert params.pixel_count == 8
    assert params.aspect_ratio == 2.0
    with pytest.raises(dataclasses.FrozenInstanceError):
        params.zoom = 1.0  # type: ignore[misc]


def test_apply_command_dispatch() -> None:
    view = ViewState(offset=0j)

    apply_command(view, Command.ZOOM_IN)
    apply_command(view, Command.PAN_RIGHT)
    apply_command(view, Command.PAN_UP)

    assert view.zoom == 1.5
    assert view.offset == complex(PAN_STEP * 1.5, -PAN_STEP * 1.5)


def test_quit_leaves_view_untouched() -> None:
    view = ViewState()
    view._mark_rendered()

    apply_command(view, Command.QUIT)

    assert not view.changed


def test_assigning_view_fields_marks_changed() -> None:
    view = ViewState(width=10, height=10)
    view._mark_rendered()

    view.zoom = 0.01
    assert view.changed
    assert not view.resized

    view._mark_rendered()
    view.offset = 0.25 - 0.5j
    assert view.changed
    assert view.offset == complex(0.25, -0.5)

    view._mark_rendered()
    view.width = 12
    assert view.changed
    assert view.resized


def test_assignment_keeps_invariants() -> None:
    view = ViewState()

    with pytest.raises(ValueError):
        view.zoom = 0.0
    with pytest.raises(ValueError):
        view.height = 0
    with pytest.raises(AttributeError):
        view.max_iterations = 50

    assert view.zoom == 3.0
    assert view.height == 800
    assert view.max_iterations == 200
