"""
SeriCare Backend — Disease Enrichment
======================================

What:  Turns a "diseased" verdict into a disease profile (display name plus
       ordered preventive measures) the farmer can act on.
Why:   The classifier only answers healthy/diseased; farmers need guidance.

Known limitation:
    The classifier does not say WHICH disease it saw, so a profile is drawn
    uniformly at random from DISEASE_PROFILES. This is a placeholder until a
    multi-class model exists; nothing downstream should treat the chosen
    disease as a diagnosis.

DISEASE_PROFILES is static data built at import time and exposed read-only.
"""

import random
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from sericare.schemas.upload import Prediction


@dataclass(frozen=True)
class DiseaseProfile:
    key: str
    name: str
    preventive_measures: Tuple[str, ...]

    def to_record(self) -> Dict[str, Any]:
        """Shape stored in uploads.disease_info."""
        return {"name": self.name, "preventiveMeasures": list(self.preventive_measures)}


DISEASE_PROFILES: Mapping[str, DiseaseProfile] = MappingProxyType({
    "grasserie": DiseaseProfile(
        key="grasserie",
        name="Grasserie",
        preventive_measures=(
            "Maintain hygiene in rearing house.",
            "Avoid overcrowding of silkworms.",
            "Disinfect rearing equipment regularly.",
            "Remove and destroy infected larvae immediately.",
        ),
    ),
    "flacherie": DiseaseProfile(
        key="flacherie",
        name="Flacherie",
        preventive_measures=(
            "Avoid feeding wet or contaminated mulberry leaves.",
            "Control temperature and humidity.",
            "Do not disturb worms during feeding.",
            "Destroy infected worms promptly.",
        ),
    ),
    "muscardine": DiseaseProfile(
        key="muscardine",
        name="Muscardine",
        preventive_measures=(
            "Dust larvae with slaked lime or fungal spore killers.",
            "Maintain dry and clean rearing environment.",
            "Dispose of dead larvae quickly.",
        ),
    ),
    "pebrine": DiseaseProfile(
        key="pebrine",
        name="Pebrine",
        preventive_measures=(
            "Use only disease-free silkworm eggs.",
            "Examine mother moths before egg laying.",
            "Destroy infected batches immediately.",
        ),
    ),
})

_PROFILE_KEYS = tuple(DISEASE_PROFILES)


def enrich(prediction: Prediction, rng: Optional[random.Random] = None) -> Optional[DiseaseProfile]:
    """
    Pick disease guidance for a prediction.

    Returns:
        A DiseaseProfile when the label is 'diseased', None when 'healthy'.

    Args:
        rng: Random source; tests pass a seeded random.Random.
    """
    if not prediction.is_diseased:
        return None
    chooser = rng or random
    return DISEASE_PROFILES[chooser.choice(_PROFILE_KEYS)]
