"""
Writer — serialize the build receipt to JSON.

Filesystem layout per build directory:
    <build_dir>/build_receipt.json            # last real build
    <build_dir>/build_receipt.dry_run.json    # last dry run
"""
import json
from pathlib import Path

from fpga_build.io.schema import BuildReceipt

RECEIPT_NAME = "build_receipt.json"
DRY_RUN_RECEIPT_NAME = "build_receipt.dry_run.json"


def write_receipt(receipt: BuildReceipt, build_dir: Path) -> Path:
    """
    Write the receipt into *build_dir*.

    Dry-run receipts go to their own file so the record of the last real
    build is never replaced by a plan.  Creates *build_dir* if it does not
    exist.  Returns the receipt path.
    """
    build_dir.mkdir(parents=True, exist_ok=True)
    name = DRY_RUN_RECEIPT_NAME if receipt.job.dry_run else RECEIPT_NAME
    receipt_path = build_dir / name
    receipt_path.write_text(
        json.dumps(
            receipt.model_dump(mode="json"),
            indent=2,
            sort_keys=True,
        )
        + "\n"
    )
    return receipt_path
