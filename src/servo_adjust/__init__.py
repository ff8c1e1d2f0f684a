"""servo-adjust: calibration profile manager for LeRobot arms."""

__version__ = "0.1.0"
