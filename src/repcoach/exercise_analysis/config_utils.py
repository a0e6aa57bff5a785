import json
import logging
import os
from typing import Any, Dict, List

from .profile import ExerciseProfile

logger = logging.getLogger(__name__)

PROFILE_DIR = os.path.join(os.path.dirname(__file__), "profiles")


class ProfileNotFoundError(FileNotFoundError):
    """Raised when a bundled profile name or profile path does not exist."""


def list_profiles() -> List[str]:
    """Names of the bundled exercise profiles."""
    return sorted(
        os.path.splitext(name)[0]
        for name in os.listdir(PROFILE_DIR)
        if name.endswith(".json")
    )


def load_profile_config(name_or_path: str) -> Dict[str, Any]:
    """Load a raw profile document from a bundled name or a JSON file path."""
    if os.path.isfile(name_or_path):
        config_path = name_or_path
    else:
        config_path = os.path.join(PROFILE_DIR, f"{name_or_path}.json")
        if not os.path.isfile(config_path):
            raise ProfileNotFoundError(
                f"No exercise profile '{name_or_path}'. Bundled profiles: {', '.join(list_profiles())}"
            )
    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_profile(name_or_path: str) -> ExerciseProfile:
    """Load and validate an exercise profile."""
    profile = ExerciseProfile.from_dict(load_profile_config(name_or_path))
    logger.info(f"Loaded exercise profile '{profile.name}' ({len(profile.phases)} phases)")
    return profile
