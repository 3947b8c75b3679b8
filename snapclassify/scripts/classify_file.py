"""
Classify image files offline through the same session flow the server uses.

Usage:
    python -m snapclassify.scripts.classify_file photo.jpg [more.png ...]
    SNAP_RUNTIME=onnx SNAP_MODEL_SOURCE=models/mobilenetv2.onnx SNAP_LABELS_PATH=models/labels.txt \
        python -m snapclassify.scripts.classify_file photo.jpg --top-k 5
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from snapclassify.config import get_config
from snapclassify.orchestrator.errors import CaptureError
from snapclassify.services.factory import build_session
from snapclassify.services.status_store import StatusStore


async def classify_files(paths: list[Path]) -> int:
    config = get_config()
    config.camera_backend = "mock"
    status = StatusStore()
    session = build_session(config, status)

    snap = await session.start()
    if snap.phase != "ready":
        print(f"model failed to load: {snap.error.message if snap.error else snap.phase}")
        return 1

    rc = 0
    try:
        for path in paths:
            try:
                snap = await session.supply_image(path.read_bytes())
            except (CaptureError, OSError) as e:
                print(f"{path}: {e}")
                rc = 1
                continue
            print(f"{path} ({snap.frame.width}x{snap.frame.height})")
            if not snap.predictions:
                print("  no prediction")
            for p in snap.predictions or ():
                print(f"  {p.probability * 100:5.1f}%  {p.label}")
            await session.retry()
    finally:
        await session.close()
    return rc


def main():
    parser = argparse.ArgumentParser(
        description="Classify image files with the configured model",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("images", nargs="+", type=Path, help="JPEG/PNG files")
    parser.add_argument("--top-k", type=int, default=None, help="results per image (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="show session trace")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if args.top_k is not None:
        get_config().top_k = args.top_k

    sys.exit(asyncio.run(classify_files(args.images)))


if __name__ == "__main__":
    main()
