"""
Triagesim Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration loaded from environment variables."""

    # Integration grid used between rule checkpoints (seconds)
    STEP_DURATION_SECONDS: float = float(os.getenv("STEP_DURATION_SECONDS", "10"))

    # Default environment
    ATMOSPHERIC_PRESSURE_MMHG: float = float(os.getenv("ATMOSPHERIC_PRESSURE_MMHG", "760"))
    FIO2: float = float(os.getenv("FIO2", "0.21"))

    # Physiology switches
    LUNG_VASOCONSTRICTION: bool = _flag("LUNG_VASOCONSTRICTION", "true")

    # World / visibility
    FOG_TYPE: str = os.getenv("FOG_TYPE", "NONE").upper()
    LINE_OF_SIGHT_RADIUS: float = float(os.getenv("LINE_OF_SIGHT_RADIUS", "100"))
    # Walking speed, map units per second (5 kph)
    HUMAN_SPEED: float = float(os.getenv("HUMAN_SPEED", "1.4"))

    # Logging
    DEBUG_PHYSIOLOGY: bool = _flag("DEBUG_PHYSIOLOGY")

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    CONTENT_DIR: Path = Path(os.getenv("CONTENT_DIR", str(PROJECT_ROOT / "content")))

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors on inconsistent values."""
        if cls.FOG_TYPE not in ("NONE", "SIGHT", "FULL"):
            raise ValueError(
                f"FOG_TYPE must be one of NONE, SIGHT, FULL (got {cls.FOG_TYPE!r})"
            )

        if cls.STEP_DURATION_SECONDS <= 0:
            raise ValueError(
                "STEP_DURATION_SECONDS must be positive. "
                "Smaller steps are more accurate but slower to replay."
            )

        if not 0 <= cls.FIO2 <= 1:
            raise ValueError(f"FIO2 must be within [0, 1] (got {cls.FIO2})")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Triagesim Configuration:",
            f"  Step Duration: {cls.STEP_DURATION_SECONDS}s",
            f"  Environment: {cls.ATMOSPHERIC_PRESSURE_MMHG} mmHg, FiO2 {cls.FIO2}",
            f"  Lung Vasoconstriction: {cls.LUNG_VASOCONSTRICTION}",
            f"  Fog: {cls.FOG_TYPE} (radius {cls.LINE_OF_SIGHT_RADIUS})",
            f"  Content: {cls.CONTENT_DIR}",
        ]
        return "\n".join(lines)
