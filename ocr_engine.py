r"""
PaddleOCR-backed text recognition for uploaded ID images.

recognize(image) runs OCR on the original image and, when that pass looks
weak, again on a contrast-enhanced copy, then merges the reads top to
bottom preferring the higher-confidence text per row.

Usage:
  pip install paddlepaddle paddleocr pillow
  set OCR_DEBUG=1 to log raw engine output
"""
import io
import logging
import os
import re
from collections import namedtuple
from pathlib import Path
from typing import Dict, List

import numpy as np
from PIL import Image, ImageEnhance, ImageFilter, UnidentifiedImageError

from errors import OCRFailure

logger = logging.getLogger(__name__)

OCRResult = namedtuple("OCRResult", ["text", "confidence"])

IMAGE_EXTS = {'.jpg', '.jpeg', '.png', '.tiff', '.bmp', '.webp'}
MAX_OCR_WIDTH = 1600
MIN_ENHANCED_WIDTH = 1200
ROW_BUCKET = 5.0

# a confident first pass that mentions one of these skips the enhanced pass
STRONG_KEYWORDS = [
    'INCOME TAX', 'PERMANENT ACCOUNT', 'AADHAAR', 'GOVERNMENT OF INDIA',
    'PASSPORT', 'REPUBLIC OF', 'UNIQUE IDENTIFICATION', 'NATIONALITY',
]
EARLY_EXIT_CONFIDENCE = 0.80

OCR = None


def _debug_enabled() -> bool:
    return bool(os.environ.get('OCR_DEBUG'))


def get_ocr(lang: str = 'en'):
    """Lazy-initialize PaddleOCR to avoid heavy work at import time and provide friendly errors."""
    global OCR
    if OCR is not None:
        return OCR
    try:
        from paddleocr import PaddleOCR
    except ImportError as e:
        raise OCRFailure(
            "Failed to import paddleocr. Ensure `paddleocr` and `paddlepaddle` are installed "
            "and internet access is available for first-run model downloads."
        ) from e
    try:
        # enable_mkldnn=False avoids 'cat: not found' errors on minimal Linux images
        OCR = PaddleOCR(use_angle_cls=True, lang=lang, enable_mkldnn=False)
    except TypeError:
        # older releases reject some keyword arguments
        OCR = PaddleOCR(lang=lang)
    return OCR


def load_image(source) -> Image.Image:
    """Open a path, raw bytes, numpy array or PIL image as RGB."""
    try:
        if isinstance(source, Image.Image):
            img = source
        elif isinstance(source, np.ndarray):
            img = Image.fromarray(source)
        elif isinstance(source, (bytes, bytearray)):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(Path(source))
        return img.convert('RGB')
    except (OSError, UnidentifiedImageError, ValueError, TypeError) as e:
        raise OCRFailure(f"Unreadable image: {e}") from e


def is_english_text(text: str) -> bool:
    """Drop Devanagari and other non-Latin reads; the extractors only understand Latin text."""
    if not text:
        return False
    cleaned = re.sub(r'[\s\.,\-\/:;()\[\]{}!?@#$%^&*+=_~`\'"<>|\\]', '', text)
    if not cleaned:
        return True
    return bool(re.match(r'^[A-Za-z0-9]+$', cleaned))


def parse_result(res) -> List[Dict]:
    """Normalize PaddleOCR output into [{'text', 'conf', 'y'}] records."""
    recs = []
    if not res:
        return recs

    # PaddleOCR 3.x returns one dict per page with parallel rec_* lists
    if isinstance(res, list) and isinstance(res[0], dict) and 'rec_texts' in res[0]:
        page = res[0]
        texts = page.get('rec_texts', [])
        scores = page.get('rec_scores', [])
        polys = page.get('rec_polys', [])
        for idx, txt in enumerate(texts):
            txt = str(txt).strip() if txt is not None else ''
            if not txt or not is_english_text(txt):
                continue
            conf = float(scores[idx]) if idx < len(scores) else 0.0
            poly = polys[idx] if idx < len(polys) else None
            y = int(min(int(p[1]) for p in poly)) if poly is not None else 0
            recs.append({"text": txt, "conf": conf, "y": y})
        return recs

    # 2.x layout: [[box, (text, conf)], ...] per page
    for page in res:
        for item in page or []:
            box, recog = item[0], item[1]
            if isinstance(recog, (list, tuple)):
                text = recog[0]
                conf = float(recog[1]) if len(recog) > 1 else 0.0
            else:
                text, conf = str(recog), 0.0
            if not text or not text.strip() or not is_english_text(text):
                continue
            y = min(p[1] for p in box)
            recs.append({"text": text.strip(), "conf": conf, "y": y})
    return recs


def enhance_image(img: Image.Image) -> Image.Image:
    """Upscale small images, boost contrast and sharpen."""
    w, h = img.size
    if w < MIN_ENHANCED_WIDTH:
        img = img.resize((MIN_ENHANCED_WIDTH, int(h * (MIN_ENHANCED_WIDTH / w))), Image.LANCZOS)
    img = ImageEnhance.Contrast(img).enhance(1.6)
    return img.filter(ImageFilter.SHARPEN)


def merge_records(results: List[Dict]) -> List[Dict]:
    """Bucket reads by row, keep the most confident per row, order top to bottom."""
    buckets = {}
    for r in results:
        b = int(round(r['y'] / ROW_BUCKET) * ROW_BUCKET)
        if b not in buckets or r['conf'] > buckets[b]['conf']:
            buckets[b] = r
    return [buckets[k] for k in sorted(buckets)]


class OCREngine:
    """The OCR capability: image in, recognized text plus 0-100 confidence out."""

    def __init__(self, lang: str = 'en'):
        self.lang = lang

    def _run(self, ocr, arg):
        try:
            return ocr.ocr(arg)
        except (AttributeError, TypeError):
            # newer releases renamed ocr() to predict()
            return ocr.predict(arg)

    def records(self, image) -> List[Dict]:
        img = load_image(image)
        ocr = get_ocr(self.lang)
        w, h = img.size
        if w > MAX_OCR_WIDTH:
            img = img.resize((MAX_OCR_WIDTH, int(h * (MAX_OCR_WIDTH / w))), Image.LANCZOS)
            logger.debug("Resized image to %dx%d", MAX_OCR_WIDTH, img.size[1])

        try:
            first = parse_result(self._run(ocr, np.array(img)))
            if first:
                avg_conf = sum(r['conf'] for r in first) / len(first)
                full_text = " ".join(r['text'] for r in first).upper()
                found = [k for k in STRONG_KEYWORDS if k in full_text]
                if _debug_enabled():
                    logger.debug("Pass 1 avg conf %.4f, keywords %s", avg_conf, found)
                if found and avg_conf > EARLY_EXIT_CONFIDENCE:
                    return merge_records(first)

            second = parse_result(self._run(ocr, np.array(enhance_image(img))))
        except OCRFailure:
            raise
        except Exception as e:
            logger.error("OCR backend error: %s", e)
            raise OCRFailure(f"OCR backend error: {e}") from e

        return merge_records(first + second)

    def recognize(self, image) -> OCRResult:
        recs = self.records(image)
        if not recs:
            return OCRResult("", 0.0)
        text = "\n".join(r['text'] for r in recs)
        confidence = sum(r['conf'] for r in recs) / len(recs) * 100
        return OCRResult(text, round(confidence, 2))

    def warmup(self):
        """Run a dummy read so model downloads happen before the first request."""
        dummy = np.ones((100, 100, 3), dtype=np.uint8) * 255
        self._run(get_ocr(self.lang), dummy)
