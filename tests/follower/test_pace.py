# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the follower's speaking pace estimate and jump boost.
"""

import pytest

from cuefollow.scroll_follower import FollowerOptions, ScrollFollower, ScrollGeometry


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_follower(clock: FakeClock, **options) -> ScrollFollower:
    geometry = ScrollGeometry(viewport_height=1000, content_height=11000, total_words=1000)
    return ScrollFollower(lambda: 0, geometry, FollowerOptions(**options), clock=clock)


class TestPace:
    """Pace is an EWMA of advance deltas over elapsed time."""

    def test_starts_at_calibration_pace(self):
        follower = make_follower(FakeClock())
        assert follower.pace == pytest.approx(2.5)

    def test_first_advance_has_no_pace_sample(self):
        follower = make_follower(FakeClock())
        follower.on_advance(5, 0, timestamp=1.0)
        assert follower.pace == pytest.approx(2.5)

    def test_ewma_update(self):
        follower = make_follower(FakeClock())
        follower.on_advance(3, 0, timestamp=1.0)
        follower.on_advance(7, 3, timestamp=2.0)  # 4 words/s
        assert follower.pace == pytest.approx(2.5 * 0.7 + 4.0 * 0.3)

    def test_pace_never_exceeds_max(self):
        follower = make_follower(FakeClock())
        position = 0
        follower.on_advance(position, 0, timestamp=0.0)
        for step in range(1, 200):
            # 5 words in 0.1s is 50 words/s
            follower.on_advance(position + 5, position, timestamp=step * 0.1)
            position += 5
            assert follower.pace <= 10.0
        assert follower.pace == pytest.approx(10.0, abs=1e-6)

    def test_pace_never_below_min(self):
        follower = make_follower(FakeClock())
        follower.on_advance(0, 0, timestamp=0.0)
        for step in range(1, 100):
            # 1 word every 4.9s is about 0.2 words/s
            follower.on_advance(step, step - 1, timestamp=step * 4.9)
            assert follower.pace >= 0.5
        assert follower.pace == pytest.approx(0.5, abs=1e-6)

    def test_long_pause_is_not_a_sample(self):
        follower = make_follower(FakeClock())
        follower.on_advance(3, 0, timestamp=1.0)
        follower.on_advance(4, 3, timestamp=20.0)
        assert follower.pace == pytest.approx(2.5)

    def test_backward_advance_is_not_a_sample(self):
        follower = make_follower(FakeClock())
        follower.on_advance(30, 0, timestamp=1.0)
        follower.on_advance(25, 30, timestamp=2.0)
        assert follower.pace == pytest.approx(2.5)

    def test_speed_scales_with_pace(self):
        follower = make_follower(FakeClock())
        follower.on_advance(3, 0, timestamp=1.0)
        follower.on_advance(7, 3, timestamp=2.0)
        expected = 4.0 * (follower.pace / 2.5)
        assert follower.current_speed() == pytest.approx(expected)

    def test_reset_restores_pace(self):
        follower = make_follower(FakeClock())
        follower.on_advance(3, 0, timestamp=1.0)
        follower.on_advance(13, 3, timestamp=2.0)
        follower.reset()
        assert follower.pace == pytest.approx(2.5)
        assert follower.state.last_advance_time is None


class TestJumpBoost:
    """Skips animate at jump_speed until the offset catches up."""

    def test_skip_activates_boost(self):
        follower = make_follower(FakeClock())
        follower.on_advance(50, 0)
        assert follower.state.jump_boost_active
        assert follower.current_speed() == 12.0

    def test_nearby_advance_does_not_boost(self):
        follower = make_follower(FakeClock())
        follower.on_advance(10, 0)
        assert not follower.state.jump_boost_active

    def test_backward_skip_boosts(self):
        follower = make_follower(FakeClock())
        follower.on_advance(20, 80)
        assert follower.state.jump_boost_active

    def test_boost_ends_on_convergence(self):
        clock = FakeClock()
        position = [0]
        geometry = ScrollGeometry(viewport_height=1000, content_height=11000, total_words=1000)
        follower = ScrollFollower(lambda: position[0], geometry, clock=clock)

        position[0] = 200
        follower.on_advance(200, 0)
        for _ in range(600):
            clock.now += 1 / 60
            follower.tick(1 / 60)
            if not follower.state.jump_boost_active:
                break

        state = follower.state
        assert not state.jump_boost_active
        assert abs(state.target_offset - state.current_offset) <= 1.0
