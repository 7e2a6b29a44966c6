"""
Data Schemas for BHB Truck Sales

Every model is stored inside the single trucks.json document.
Attributes are snake_case in Python and camelCase on the wire and on disk.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_SPEC_TEXT = 1000


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


def _check_spec_strings(value: Any, path: str = "specifications") -> None:
    if isinstance(value, str):
        if len(value) > MAX_SPEC_TEXT:
            raise ValueError(f"Specification text too long at {path}")
    elif isinstance(value, dict):
        for key, item in value.items():
            _check_spec_strings(item, f"{path}.{key}")
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _check_spec_strings(item, f"{path}[{index}]")


def normalize_primary(images: List["TruckImage"]) -> List["TruckImage"]:
    """Leave at most one image flagged as primary (the first one)."""
    seen = False
    for image in images:
        if image.is_primary:
            if seen:
                image.is_primary = False
            seen = True
    return images


class TruckImage(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    url: str = Field(..., max_length=500)
    caption: Optional[str] = Field(None, max_length=500)
    is_primary: bool = Field(False)
    filename: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)


class TruckFields(CamelModel):
    """Optional listing attributes shared by create, update and stored records."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        str_strip_whitespace=True,
        protected_namespaces=(),
    )

    stock_number: Optional[str] = Field(None, min_length=1, max_length=50)
    vin_number: Optional[str] = Field(None, max_length=50)
    model_code: Optional[str] = Field(None, max_length=50)
    condition: Optional[str] = Field(None, max_length=50)
    price: Optional[str] = Field(None, max_length=50, description="Stored as entered, never parsed")
    overview: Optional[str] = Field(None, max_length=5000)
    engine: Optional[str] = Field(None, max_length=500)
    transmission: Optional[str] = Field(None, max_length=500)
    drivetrain: Optional[str] = Field(None, max_length=100)
    exterior_color: Optional[str] = Field(None, max_length=100)
    interior_color: Optional[str] = Field(None, max_length=100)
    specifications: Optional[Dict[str, Any]] = Field(None, description="Free-form spec groups")

    @field_validator("specifications")
    @classmethod
    def cap_spec_text(cls, value):
        if value is not None:
            _check_spec_strings(value)
        return value

    @field_validator("price", mode="before")
    @classmethod
    def price_as_text(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class TruckCreate(TruckFields):
    """Body of POST /api/trucks"""

    year: int = Field(..., ge=1800, le=2100)
    make: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    is_available: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None
    images: Optional[List[TruckImage]] = None


class TruckUpdate(TruckFields):
    """Body of PUT /api/trucks/{id}; only the fields sent are applied."""

    year: Optional[int] = Field(None, ge=1800, le=2100)
    make: Optional[str] = Field(None, min_length=1, max_length=100)
    model: Optional[str] = Field(None, min_length=1, max_length=100)
    is_available: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None
    images: Optional[List[TruckImage]] = None


class Truck(TruckFields):
    """
    One vehicle listing
    Key: "id", a slug of year, make, model and stock number
    """

    id: str = Field(..., description="URL slug, unique")
    year: int = Field(..., ge=1800, le=2100)
    make: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    is_available: bool = True
    is_featured: bool = False
    is_active: bool = Field(True, description="False hides the listing from public reads")
    images: List[TruckImage] = Field(default_factory=list)
    date_added: Optional[str] = None
    last_modified: Optional[str] = None


class ToggleRequest(BaseModel):
    field: str = Field(..., description="available, featured or active")


# ---------- Site settings ----------

class Announcement(CamelModel):
    is_active: bool = False
    title: str = ""
    message: str = ""
    created_at: Optional[str] = None


class ImageSetting(CamelModel):
    image_url: str = ""
    alt_text: str = ""


class SiteSettings(CamelModel):
    """
    Site-wide branding
    Singleton: "siteSettings"
    """

    announcement: Announcement = Field(default_factory=Announcement)
    banner: ImageSetting = Field(default_factory=lambda: ImageSetting(alt_text="BHB Truck Sales banner"))
    logo: ImageSetting = Field(default_factory=lambda: ImageSetting(alt_text="BHB Truck Sales"))


# ---------- About page ----------

class ParagraphSection(BaseModel):
    type: Literal["paragraph"]
    text: str = Field(..., max_length=5000)


class ImageSection(BaseModel):
    type: Literal["image"]
    url: str = Field(..., max_length=500)
    caption: str = Field("", max_length=500)


Section = Annotated[Union[ParagraphSection, ImageSection], Field(discriminator="type")]


class AboutPage(BaseModel):
    """
    About page content
    Singleton: "aboutPage"
    """

    title: str = Field("About Us", max_length=200)
    content: List[Section] = Field(default_factory=list)


# ---------- Document root ----------

class Document(CamelModel):
    """The whole trucks.json file."""

    trucks: List[Truck] = Field(default_factory=list)
    site_settings: SiteSettings = Field(default_factory=SiteSettings)
    about_page: AboutPage = Field(default_factory=AboutPage)
    last_updated: Optional[str] = None


# ---------- Auth & contact ----------

class LoginRequest(BaseModel):
    password: str = Field(..., min_length=1)


class ContactRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    subject: Optional[str] = Field(None, max_length=200)
    truck_interest: Optional[str] = Field(None, max_length=500)
    message: str = Field(..., min_length=10, max_length=2000)

    @field_validator("email", "phone", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value
