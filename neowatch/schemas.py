from pydantic import BaseModel, ConfigDict


class RiskAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    risk_score: int
    risk_level: str
    risk_color: str
    risk_description: str
    risk_factors: tuple[str, ...]
    size_km: float
    miss_distance_lunar: float | None
    velocity_kmh: float
    is_nasa_hazardous: bool
    approach_date: str | None = None
    nasa_jpl_url: str | None = None


class RiskSummary(BaseModel):
    total_objects: int = 0
    critical_risk: int = 0
    high_risk: int = 0
    moderate_risk: int = 0
    low_risk: int = 0
    minimal_risk: int = 0
    highest_risk_score: int = 0
    average_risk_score: float = 0.0


class SimpleNeo(BaseModel):
    id: str
    name: str
    is_hazardous: bool
    diameter_min_km: float
    diameter_max_km: float
    miss_distance_km: float | None
    miss_distance_lunar: float | None
    velocity_kmh: float
    approach_date: str | None
    orbiting_body: str | None = None
    nasa_jpl_url: str | None = None


class SizeBin(BaseModel):
    category: str
    count: int
    percentage: float


class ScatterPoint(BaseModel):
    x: float
    y: float
    name: str
    is_hazardous: bool
    velocity_kmh: float


class TimelineDay(BaseModel):
    date: str
    total_count: int
    hazardous_count: int
    closest_distance: float | None
    largest_diameter: float
