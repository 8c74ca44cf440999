"""Drone survey runner boundary with a simulated implementation."""
from __future__ import annotations

import random
import time
from typing import Dict, List, Optional

from models import REPORT_SEVERITIES

VIOLATION_TYPES = ("Oversized", "Unauthorized Placement", "Missing License", "Structural Hazard")
SURVEY_IMAGE_URL = "https://images.pexels.com/photos/1666073/pexels-photo-1666073.jpeg"


class SurveyError(Exception):
    """Raised when a survey area or mission is invalid."""


def validate_area(area: Dict, max_radius_km: float) -> Dict:
    try:
        center = area["center"]
        lat = float(center["lat"])
        lng = float(center["lng"])
        radius = float(area["radius"])
        altitude = float(area["altitude"])
    except (KeyError, TypeError, ValueError) as exc:
        raise SurveyError("Survey area needs center.lat, center.lng, radius and altitude") from exc
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise SurveyError("Survey center is outside valid coordinates")
    if radius <= 0 or radius > max_radius_km:
        raise SurveyError(f"Survey radius must be between 0 and {max_radius_km} km")
    if altitude <= 0:
        raise SurveyError("Survey altitude must be positive")
    return {"center": {"lat": lat, "lng": lng}, "radius": radius, "altitude": altitude}


class SurveyRunner:
    name = "base"

    def initiate(self, area: Dict) -> str:
        raise NotImplementedError

    def results(self, mission_id: str, area: Dict) -> Dict:
        raise NotImplementedError


class SimulatedSurveyRunner(SurveyRunner):
    name = "simulated"

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random(seed)

    def initiate(self, area: Dict) -> str:
        suffix = "".join(self.rng.choice("abcdefghijklmnopqrstuvwxyz0123456789") for _ in range(9))
        return f"DRONE_{int(time.time() * 1000)}_{suffix}"

    def results(self, mission_id: str, area: Dict) -> Dict:
        center = area["center"]
        count = self.rng.randint(5, 19)
        violations: List[Dict] = []
        for index in range(count):
            violations.append(
                {
                    "id": f"VIOLATION_{index + 1}",
                    "coordinates": {
                        "lat": center["lat"] + (self.rng.random() - 0.5) * 0.1,
                        "lng": center["lng"] + (self.rng.random() - 0.5) * 0.1,
                    },
                    "violation_type": self.rng.choice(VIOLATION_TYPES),
                    "severity": self.rng.choice(REPORT_SEVERITIES),
                    "image_url": SURVEY_IMAGE_URL,
                }
            )
        return {
            "mission_id": mission_id,
            "total_billboards": count + self.rng.randint(10, 29),
            "violations": violations,
            "coverage": {
                "area_scanned": self.rng.randint(25, 74),
                "flight_time": self.rng.randint(60, 179),
                "battery_used": self.rng.randint(60, 99),
            },
        }


def get_survey_runner(config) -> SurveyRunner:
    return SimulatedSurveyRunner(seed=config.get("ANALYZER_SEED"))
