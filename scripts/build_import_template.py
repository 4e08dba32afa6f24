"""
Write the asset import template served by GET /api/assets/import/template.

Usage:
  python -m scripts.build_import_template [output_path]

Defaults to settings.IMPORT_TEMPLATE_PATH.
"""

import sys

from assethub.core.config import settings
from assethub.services.import_template import write_template


def main(argv: list[str]) -> None:
    path = argv[1] if len(argv) > 1 else settings.IMPORT_TEMPLATE_PATH
    target = write_template(path)
    print(f"Template written to {target}")


if __name__ == "__main__":
    main(sys.argv)
