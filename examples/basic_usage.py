#!/usr/bin/env python3
"""
Basic usage example for the off-axis stereo driver.

This example demonstrates:
1. Loading a stereo config with a tilted desk-monitor plane
2. Feeding simulated head offsets through HeadOffsetMapper
3. Advancing frames and reading per-eye matrices
4. Requesting a new convergence distance and toggling toe-in
5. Falling back to on-axis rendering

No renderer is involved; the matrices are printed instead of uploaded.
"""

import logging
import math
import sys
from pathlib import Path

import numpy as np

from offaxis_stereo import (
    FrameInputs,
    HeadOffsetMapper,
    Pose,
    StereoFrameDriver,
    load_config,
)
from offaxis_stereo.utils.logging import setup_logging

CONFIG = Path(__file__).parent / "configs" / "desk_monitor.yaml"
FRAME_DT = 1.0 / 60.0


class ExponentialSmoother:
    """Stand-in for the tracker's filter: s = a * x + (1 - a) * s."""

    def __init__(self, alpha: float = 0.3):
        self.alpha = alpha
        self._state = None

    def smooth(self, sample):
        if self._state is None:
            self._state = np.array(sample, dtype=float)
        else:
            self._state = self.alpha * np.asarray(sample) + (1 - self.alpha) * self._state
        return self._state


def main():
    setup_logging(verbose="-v" in sys.argv)
    logger = logging.getLogger(__name__)

    loaded = load_config(CONFIG)
    driver = StereoFrameDriver.from_config(
        loaded.stereo, plane=loaded.plane, calibration=loaded.calibration
    )

    # Viewer sits 0.6 m in front of the monitor, eyes level with its center
    head = HeadOffsetMapper(
        base_pose=Pose(position=[0.0, 0.17, 0.6]),
        position_scale=1.0,
        smoother=ExponentialSmoother(),
    )

    print("Simulating 120 frames of side-to-side head motion...")
    for i in range(120):
        t = i * FRAME_DT
        offset = [0.15 * math.sin(2.0 * math.pi * 0.5 * t), 0.02 * math.cos(t), 0.0]
        frame = driver.advance_frame(FRAME_DT, FrameInputs(rig_pose=head.update(offset)))

        if i % 30 == 0:
            left = frame.left
            print(f"\nFrame {frame.index}: head at {np.round(head.pose.position, 3)}")
            print(f"  left eye {left.status.value}, frustum "
                  f"l={left.frustum.left:.4f} r={left.frustum.right:.4f} "
                  f"b={left.frustum.bottom:.4f} t={left.frustum.top:.4f}")
            print(f"  gaze pixel: {frame.gaze_pixel}")

    # Converge on something closer, with toe-in, and watch it ease in
    print("\nToe-in on, converging at 0.5 m...")
    frame = driver.advance_frame(FRAME_DT, FrameInputs(
        rig_pose=head.pose, use_toe_in=True, convergence_distance=0.5))
    while abs(frame.convergence_distance - 0.5) > 1e-9:
        frame = driver.advance_frame(FRAME_DT, FrameInputs(rig_pose=head.pose))
    print(f"  converged after frame {frame.index}, point {np.round(frame.convergence_point, 3)}")

    print("\nDisabling off-axis projection...")
    driver.disable_off_axis()
    frame = driver.advance_frame(FRAME_DT, FrameInputs(rig_pose=head.pose))
    print(f"  left eye {frame.left.status.value}")
    print(np.round(frame.left.projection_matrix, 4))

    logger.info("Done")


if __name__ == "__main__":
    main()
