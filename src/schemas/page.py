"""Page schema."""

from pydantic import BaseModel, ConfigDict


class PageView(BaseModel):
    """A rasterized page of a persisted issue.

    Attributes:
        page_number: 1-based page number
        image_url: Public URL of the lossless PNG master
        delivery_image_url: Public URL of the WebP delivery derivative
        preview_image_url: Public URL of the JPEG social-preview derivative
    """

    model_config = ConfigDict(from_attributes=True)

    page_number: int
    image_url: str
    delivery_image_url: str | None = None
    preview_image_url: str | None = None
