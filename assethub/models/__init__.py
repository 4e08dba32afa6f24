"""All models must be imported here so SQLAlchemy registers them."""

from assethub.models.core import (  # noqa: F401
    Asset,
    AssetCategory,
    AssetTag,
    AssetType,
    Department,
    Location,
    asset_tag_links,
)
from assethub.models.imports import ImportMapping, ImportSession  # noqa: F401
from assethub.models.infrastructure import Company, User  # noqa: F401
