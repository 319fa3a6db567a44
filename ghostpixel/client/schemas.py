"""GeoPixels wire schemas (pydantic).

The server speaks PascalCase JSON; models expose snake_case attributes
and accept either spelling on input.

Tile sync (``POST /GetPixelsCached``)::

    request  {"Tiles": [{"x": 1000, "y": 2000, "timestamp": 1717000000}]}
    response {"ServerTimestamp": 1717000123,
              "Tiles": {"1000_2000": {"Type": "delta",
                                      "Pixels": [[1001, 2003, 16711680, 42]]},
                        "2000_2000": {"Type": "full",
                                      "ColorWebP": "<base64 webp>"}}}

Placement (``POST /PlacePixel``)::

    {"Token": "...", "Subject": "...", "UserId": 42,
     "Pixels": [{"GridX": 1001, "GridY": 2003, "Color": 16711680, "UserId": 42}]}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TileRecord(BaseModel):
    """One tile of a ``GetPixelsCached`` response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(..., alias="Type", description="'delta' or 'full'")
    pixels: List[List[int]] = Field(
        default_factory=list,
        alias="Pixels",
        description="Delta tuples [x, y, colorId, placerId]",
    )
    color_webp: Optional[str] = Field(
        None, alias="ColorWebP", description="Base64 WebP of the whole tile",
    )

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("pixels", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class TilesResponse(BaseModel):
    """Full ``GetPixelsCached`` response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    server_timestamp: Union[int, float] = Field(0, alias="ServerTimestamp")
    tiles: Dict[str, TileRecord] = Field(default_factory=dict, alias="Tiles")

    @field_validator("server_timestamp", mode="before")
    @classmethod
    def none_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("tiles", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class PlacedPixel(BaseModel):
    """One pixel of a ``PlacePixel`` request."""

    model_config = ConfigDict(populate_by_name=True)

    grid_x: int = Field(..., alias="GridX")
    grid_y: int = Field(..., alias="GridY")
    color: int = Field(..., alias="Color")
    user_id: Optional[Union[int, str]] = Field(None, alias="UserId")


class PlacePixelRequest(BaseModel):
    """Body of a ``PlacePixel`` request."""

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., alias="Token")
    subject: Optional[str] = Field(None, alias="Subject")
    user_id: Optional[Union[int, str]] = Field(None, alias="UserId")
    pixels: List[PlacedPixel] = Field(default_factory=list, alias="Pixels")

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with the server's key spelling."""
        return self.model_dump(by_alias=True)
