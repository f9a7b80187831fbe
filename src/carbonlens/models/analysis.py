"""
Analysis Result Models
======================

Structured output of the external analyzer for one batch.

Output Contract (camelCase on the wire):
    {
        "summary": "Person driving on a highway",
        "activities": [
            {"activity": "Driving", "estimatedQuantity": "~5km", "co2Kg": 0.85}
        ],
        "totalCO2Kg": 0.85,
        "scoreChange": 6.61,
        "startTime": "14:03:10",
        "endTime": "14:03:22"
    }

Design Rules:
    - scoreChange is computed locally from totalCO2Kg, never trusted
      from the model reply
    - Python attribute names are snake_case; aliases carry the wire names
"""

from typing import Any, List

from pydantic import BaseModel, Field, field_validator


class ActivityDetection(BaseModel):
    """
    One activity the analyzer saw in a batch.

    Attributes:
        activity: Short activity name (e.g. "Driving")
        estimated_quantity: Free-text quantity (e.g. "~5km", "2 bottles")
        co2_kg: Estimated emissions for this activity
    """

    activity: str = Field(..., description="Activity name")

    estimated_quantity: str = Field(
        default="",
        alias="estimatedQuantity",
        description="Free-text quantity estimate",
    )

    co2_kg: float = Field(
        default=0.0,
        ge=0.0,
        alias="co2Kg",
        description="Estimated kg CO2 for this activity",
    )

    @field_validator("estimated_quantity", mode="before")
    @classmethod
    def _quantity_as_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True


class AnalysisResult(BaseModel):
    """
    Analyzer result for one batch.

    Attributes:
        summary: Description of what the frames show
        activities: Detected activities, in analyzer order
        total_co2_kg: Total estimated kg CO2 for the batch
        score_change: Score delta derived from total_co2_kg
        start_time: Label of the first frame
        end_time: Label of the last frame
    """

    summary: str = Field(default="", description="What the analyzer saw")

    activities: List[ActivityDetection] = Field(
        default_factory=list,
        description="Detected activities",
    )

    total_co2_kg: float = Field(
        ...,
        ge=0.0,
        alias="totalCO2Kg",
        description="Total estimated kg CO2",
    )

    score_change: float = Field(
        ...,
        alias="scoreChange",
        description="Percentage of the reference daily footprint",
    )

    start_time: str = Field(default="", alias="startTime")

    end_time: str = Field(default="", alias="endTime")

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True
        json_schema_extra = {
            "example": {
                "summary": "Person driving on a highway",
                "activities": [
                    {"activity": "Driving", "estimatedQuantity": "~5km", "co2Kg": 0.85}
                ],
                "totalCO2Kg": 0.85,
                "scoreChange": 6.61,
                "startTime": "14:03:10",
                "endTime": "14:03:22",
            }
        }
