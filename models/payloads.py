"""Validated prompt payloads for the map and reduce phases."""

from pydantic import BaseModel, Field


class MapPayload(BaseModel):
    """Input to a single map-phase prompt."""

    segment_text: str = Field(min_length=1, description="Segment of extracted page text")
    source_url: str = Field(default="", description="Source the segment was taken from")


class ReducePayload(BaseModel):
    """Input to the reduce-phase prompt."""

    combined_text: str = Field(
        min_length=1,
        description="All intermediate summaries joined by the summary separator",
    )
