"""
Batch extraction from the command line.

  python cli.py --input scans/ --type pan --output results.json
  python cli.py -i front.jpg -t other --faces-dir crops/
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List

from config import get_config
from errors import IntakeError
from face_service import FaceEngine
from models import DocumentType
from ocr_engine import IMAGE_EXTS, OCREngine, load_image
from orchestrator import RunGuard, process_upload

logger = logging.getLogger(__name__)


def gather_image_paths(input_path: str) -> List[Path]:
    p = Path(input_path)
    if p.is_dir():
        return sorted(x for x in p.iterdir() if x.suffix.lower() in IMAGE_EXTS)
    if p.is_file():
        return [p] if p.suffix.lower() in IMAGE_EXTS else []
    return []


def process_path(path: Path, doc_type: DocumentType, ocr, face_engine, guard=None, faces_dir=None) -> dict:
    image = load_image(path)
    outcome = asyncio.run(process_upload(image, doc_type, ocr, face_engine, guard=guard))
    res = outcome.result.to_dict()
    res["file_name"] = path.name
    res["notices"] = list(outcome.notices)
    res["face_found"] = outcome.face is not None
    if outcome.face is not None and faces_dir is not None:
        face_path = Path(faces_dir) / f"{path.stem}_face.png"
        outcome.face.image.save(face_path)
        res["face_file"] = str(face_path)
    return res


def main(argv=None, ocr=None, face_engine=None):
    cfg = get_config()
    parser = argparse.ArgumentParser(description="Extract structured JSON from ID document images")
    parser.add_argument('--input', '-i', required=True, help="Image file or folder containing images")
    parser.add_argument('--type', '-t', required=True, choices=[t.value for t in DocumentType],
                        help="Document type of every input image")
    parser.add_argument('--output', '-o', default='ocr_results.json', help="Output JSON file path")
    parser.add_argument('--faces-dir', help="Write detected face crops into this folder")
    parser.add_argument('--log-level', default=cfg.LOG_LEVEL)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout
    )

    paths = gather_image_paths(args.input)
    if not paths:
        logger.error("No images found in input. Supported extensions: %s", ",".join(sorted(IMAGE_EXTS)))
        return 1

    if args.faces_dir:
        Path(args.faces_dir).mkdir(parents=True, exist_ok=True)

    ocr = ocr or OCREngine(lang=cfg.OCR_LANG)
    face_engine = face_engine or FaceEngine(
        model_name=cfg.FACE_MODEL_NAME,
        detector_backend=cfg.FACE_DETECTOR_BACKEND,
        min_confidence=cfg.FACE_MIN_CONFIDENCE,
    )
    doc_type = DocumentType.parse(args.type)
    guard = RunGuard()

    results = []
    for p in paths:
        logger.info("Processing: %s", p)
        try:
            res = process_path(p, doc_type, ocr, face_engine, guard=guard, faces_dir=args.faces_dir)
            results.append(res)
            logger.debug(json.dumps(res, ensure_ascii=False, indent=2))
        except IntakeError as e:
            logger.error("Failed on %s: %s", p.name, e)
            results.append({"file_name": p.name, "error": str(e)})

    outp = Path(args.output)
    with outp.open('w', encoding='utf-8') as f:
        json.dump(results, f, indent=2, ensure_ascii=False)
    logger.info("Saved %d result(s) to %s", len(results), outp)
    return 0


if __name__ == "__main__":
    sys.exit(main())
