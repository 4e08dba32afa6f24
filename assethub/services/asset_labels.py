"""
Asset label artifacts.

Every imported asset gets a small label document holding the payload a
printed QR sticker encodes (the public asset URL plus identifying
fields). Writing it is best-effort: callers log failures and carry on.
"""

import json

from assethub.core.config import settings
from assethub.models.core import Asset
from assethub.services import storage


def label_payload(asset: Asset) -> dict:
    return {
        "asset_id": asset.asset_id,
        "name": asset.name,
        "serial_number": asset.serial_number,
        "company_id": asset.company_id,
        "url": f"{settings.PUBLIC_ASSET_BASE_URL.rstrip('/')}/{asset.asset_id}",
    }


def label_path_for(asset: Asset) -> str:
    """Storage path of an asset's label, keyed by primary key."""
    return f"{storage.LABELS_DIR}/{asset.company_id}/{asset.id}.json"


def write_asset_label(asset: Asset) -> str:
    """Write the label for a flushed asset and return its storage path."""
    content = json.dumps(label_payload(asset), indent=2).encode("utf-8")
    return storage.write_bytes(label_path_for(asset), content)
