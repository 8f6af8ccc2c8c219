"""
Receipt Ledger - Receipt Analysis

PURPOSE: Turn an uploaded receipt image into a typed AnalysisResult
SCOPE: OCR text extraction and labelled-line parsing
DEPENDENCIES: pytesseract, cv2, PIL, numpy, aiofiles
"""

import asyncio
import io
import logging
import re
from typing import Optional

import aiofiles
import cv2
import numpy as np
import pytesseract
from PIL import Image

from .models import AnalysisResult

logger = logging.getLogger(__name__)

UNKNOWN_VALUES = ('', '不明', 'null', 'none')

_LABELS = {
    'date': ('日付',),
    'amount': ('金額', '合計'),
    'payment_method': ('支払い方法', '支払方法'),
    'items': ('詳細',),
    'store_name': ('店舗', '店舗名'),
}


def _clean(value: str) -> Optional[str]:
    value = value.strip()
    if value.lower() in UNKNOWN_VALUES:
        return None
    return value


def parse_amount(value: str) -> Optional[int]:
    """'1,200円' / '¥1200' / '1200.0' -> 1200."""
    cleaned = re.sub(r'[¥￥円,\s]', '', value or '')
    try:
        return int(round(float(cleaned)))
    except ValueError:
        return None


def parse_analysis_text(text: str) -> AnalysisResult:
    """Read 'label: value' lines (e.g. '日付: 2025/08/01') into a result."""
    found = {}
    for line in text.splitlines():
        label, sep, value = _split_label(line.strip())
        if not sep:
            continue
        for key, names in _LABELS.items():
            if key not in found and label.strip() in names:
                found[key] = _clean(value)
                break

    amount = parse_amount(found['amount']) if found.get('amount') else None
    return AnalysisResult.from_fields(
        date=found.get('date'),
        total_amount=amount,
        payment_method=found.get('payment_method'),
        items=found.get('items'),
        store_name=found.get('store_name'),
    )


def _split_label(line: str):
    match = re.match(r'^([^:：]+)([:：])(.*)$', line)
    if not match:
        return line, '', ''
    return match.group(1), match.group(2), match.group(3)


class OCRAnalyzer:
    """Extracts receipt fields from an image with Tesseract."""

    def __init__(self, languages: str = 'jpn+eng'):
        self.ocr_config = f'--oem 3 --psm 6 -l {languages}'

    async def analyze(self, asset_ref: str) -> AnalysisResult:
        """Analyze the image at `asset_ref`. Raises on unreadable images or empty OCR output."""
        async with aiofiles.open(asset_ref, mode='rb') as f:
            image_bytes = await f.read()

        text = await self._extract_text(image_bytes)
        if not text.strip():
            raise ValueError(f"No text extracted from {asset_ref}")

        result = parse_analysis_text(text)
        logger.info(f"Analysis result: is_receipt={result.is_receipt}, "
                    f"date={result.date}, amount={result.total_amount}")
        return result

    async def _extract_text(self, image_bytes: bytes) -> str:
        image = Image.open(io.BytesIO(image_bytes)).convert('RGB')
        gray = cv2.cvtColor(np.array(image), cv2.COLOR_RGB2GRAY)

        # Run OCR in thread pool to avoid blocking
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: pytesseract.image_to_string(gray, config=self.ocr_config)
        )
