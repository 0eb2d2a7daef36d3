"""
伝票データの抽出
スプレッドシート(Excel/CSV)は pandas で読み込み、画像は Claude API で読み取る
"""

import base64
import io
import json
import re
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import requests
from rapidfuzz import fuzz

from voucher_models import ExtractionError, UnsupportedFileTypeError, VoucherRow


SPREADSHEET_EXTENSIONS = ("xlsx", "xls", "csv")
IMAGE_MEDIA_TYPES = {"jpg": "image/jpeg", "jpeg": "image/jpeg", "png": "image/png"}

UNSUPPORTED_MESSAGE = "Unsupported file type. Please upload an Excel sheet or an image (JPG, PNG)."
DATE_FORMAT = "%d-%m-%Y"


# 列見出しの表記ゆれ（正規化後: 英数字のみ・小文字）
HEADER_ALIASES: Dict[str, List[str]] = {
    "date": ["date", "voucherdate", "paymentdate", "txndate"],
    "bank_name": ["bankname", "bank"],
    "bank_code": ["bankcode", "ifsc", "ifsccode"],
    "voucher_code": ["vouchercode", "voucherno", "vouchernumber", "voucher"],
    "paid_to": ["paidto", "payto", "payee", "name"],
    "reference_no": ["referenceno", "referencenumber", "reference", "refno", "chequeno", "utr"],
    "amount": ["amount", "amt", "rupees", "total"],
    "description": ["being", "description", "narration", "particulars", "remarks"],
}


def _normalize_header(text) -> str:
    return re.sub(r"[^a-z0-9]", "", str(text or "").lower())


def map_columns(columns, min_similarity: float = 0.85) -> Dict[str, str]:
    """列見出し → VoucherRow のフィールド名。完全一致を優先し、なければあいまい一致"""
    mapping: Dict[str, str] = {}
    used = set()

    for col in columns:
        norm = _normalize_header(col)
        for field, aliases in HEADER_ALIASES.items():
            if field not in used and norm in aliases:
                mapping[col] = field
                used.add(field)
                break

    for col in columns:
        if col in mapping:
            continue
        norm = _normalize_header(col)
        if not norm:
            continue
        best_field, best_score = None, 0.0
        for field, aliases in HEADER_ALIASES.items():
            if field in used:
                continue
            score = max(fuzz.ratio(norm, a) for a in aliases) / 100
            if score > best_score:
                best_field, best_score = field, score
        if best_field and best_score >= min_similarity:
            mapping[col] = best_field
            used.add(best_field)
    return mapping


def _cell_value(field: str, value):
    """Excelのセル値を伝票の表示用に整える（日付は日付のみ、整数値の float は整数表記）"""
    if field == "amount" or pd.isna(value):
        return value
    if isinstance(value, (datetime, date)):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return value


def parse_spreadsheet(filename: str, data: bytes, min_similarity: float = 0.85,
                      content_type: Optional[str] = None) -> List[VoucherRow]:
    ext = Path(filename).suffix.lower().lstrip(".")
    try:
        if ext == "csv" or (not ext and "csv" in (content_type or "").lower()):
            df = pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False)
        else:
            df = pd.read_excel(io.BytesIO(data))
    except Exception as e:
        raise ExtractionError(f"Failed to read spreadsheet {filename}: {e}") from e

    mapping = map_columns(list(df.columns), min_similarity)
    if "amount" not in mapping.values() and "description" not in mapping.values():
        raise ExtractionError(f"No voucher columns found in {filename}. Columns: {', '.join(map(str, df.columns))}")

    df = df.rename(columns=mapping)[list(mapping.values())]
    rows = []
    for record in df.to_dict(orient="records"):
        if all(pd.isna(v) or not str(v).strip() for v in record.values()):
            continue  # 空行
        rows.append(VoucherRow.from_dict({k: _cell_value(k, v) for k, v in record.items()}))
    return rows


def _extract_json(content: str) -> str:
    if "```json" in content:
        json_start = content.find("```json") + 7
        json_end = content.find("```", json_start)
        return content[json_start:json_end].strip()
    json_str = content.strip()
    if json_str.startswith("```") and json_str.endswith("```"):
        json_str = json_str[3:-3].strip()
    return json_str


class ClaudeVoucherExtractor:
    """Claude API で伝票画像から行データを読み取るクライアント"""

    def __init__(self, api_key: str, model: str = "claude-3-5-sonnet-20241022",
                 max_tokens: int = 4000, timeout: int = 120):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = "https://api.anthropic.com/v1/messages"
        self.headers = {
            "x-api-key": api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json"
        }
        self.prompt = """
You are reading a scanned payment register. Extract every payment row in the image.
Return ONLY a JSON array. Each element must have these keys:
"date", "bankName", "bankCode", "voucherCode", "paidTo", "referenceNo", "amount", "description".
"amount" is a number without currency symbols or commas. "description" is the "Being" / narration text.
Use an empty string for any field that is not present.
"""

    def extract_rows(self, image: bytes, media_type: str) -> List[VoucherRow]:
        data = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": 0,
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "image", "source": {
                        "type": "base64",
                        "media_type": media_type,
                        "data": base64.b64encode(image).decode("ascii"),
                    }},
                    {"type": "text", "text": self.prompt},
                ],
            }],
        }

        try:
            response = requests.post(self.base_url, headers=self.headers, json=data, timeout=self.timeout)
            response.raise_for_status()
            content = response.json()["content"][0]["text"]
        except (requests.RequestException, KeyError, IndexError, ValueError) as e:
            raise ExtractionError(f"Failed to extract data from image: {e}") from e

        try:
            parsed = json.loads(_extract_json(content))
        except (json.JSONDecodeError, ValueError) as e:
            print(f"JSON parse error: {e}")
            print(f"Content: {content}")
            raise ExtractionError("Failed to parse data returned for the image.") from e

        if isinstance(parsed, dict):
            parsed = parsed.get("rows", [parsed])
        if not isinstance(parsed, list):
            raise ExtractionError("Unexpected data returned for the image.")
        return [VoucherRow.from_dict(item) for item in parsed if isinstance(item, dict)]


def detect_file_kind(filename: str, content_type: Optional[str] = None) -> str:
    """'spreadsheet' / 'image' を返す。対応外は UnsupportedFileTypeError"""
    ext = Path(filename or "").suffix.lower().lstrip(".")
    ctype = (content_type or "").lower()
    if ext in SPREADSHEET_EXTENSIONS or "spreadsheet" in ctype or "excel" in ctype or "csv" in ctype:
        return "spreadsheet"
    if ext in IMAGE_MEDIA_TYPES or ctype in ("image/jpeg", "image/png"):
        return "image"
    raise UnsupportedFileTypeError(UNSUPPORTED_MESSAGE)


def extract_rows(filename: str, data: bytes, content_type: Optional[str] = None,
                 image_extractor: Optional[ClaudeVoucherExtractor] = None,
                 min_similarity: float = 0.85) -> List[VoucherRow]:
    """
    アップロードされたファイルから伝票行を抽出

    Args:
        filename: ファイル名（拡張子で種類を判定）
        data: ファイルの内容
        content_type: MIMEタイプ（任意）
        image_extractor: 画像の読み取りに使うクライアント
        min_similarity: 列見出しのあいまい一致のしきい値

    Returns:
        VoucherRow のリスト（元の順序）
    """
    kind = detect_file_kind(filename, content_type)
    if kind == "spreadsheet":
        return parse_spreadsheet(filename, data, min_similarity, content_type)

    if image_extractor is None:
        raise ExtractionError("ANTHROPIC_API_KEY is not set; image extraction is unavailable.")
    ext = Path(filename or "").suffix.lower().lstrip(".")
    media_type = (content_type or "").lower()
    if media_type not in ("image/jpeg", "image/png"):
        media_type = IMAGE_MEDIA_TYPES.get(ext, "image/png")
    return image_extractor.extract_rows(data, media_type)
