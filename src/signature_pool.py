"""
署名画像プールの取り込み
ファイル名（拡張子なし・大文字）をキーに data URI を保持する
"""

import base64
import io
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from voucher_models import IngestError


_MIME_BY_FORMAT = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "GIF": "image/gif",
    "BMP": "image/bmp",
    "WEBP": "image/webp",
}


def derive_signature_key(filename: str) -> str:
    """'granules.png' → 'GRANULES'。拡張子がないファイル名は空文字になる"""
    name = Path(filename or "").name
    parts = name.split(".")
    return ".".join(parts[:-1]).strip().upper()


def image_to_data_url(data: bytes) -> str:
    """画像バイト列を data URI に変換（画像として読めない場合は ValueError）"""
    if not data:
        raise ValueError("empty image data")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            fmt = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        raise ValueError(f"not a readable image: {e}") from e

    mime = _MIME_BY_FORMAT.get(fmt or "")
    if not mime:
        raise ValueError(f"unsupported image format: {fmt}")
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def data_url_to_bytes(data_url: str) -> bytes:
    header, _, payload = (data_url or "").partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        raise ValueError("not a base64 data URI")
    return base64.b64decode(payload)


def ingest_signatures(files: Sequence[Tuple[str, bytes]], pool: Dict[str, str]) -> Tuple[Dict[str, str], List[IngestError]]:
    """
    署名画像をまとめて取り込む

    Args:
        files: (ファイル名, 画像バイト列) のリスト
        pool: 現在の署名プール（変更しない）

    Returns:
        (新しいプール, ファイルごとのエラー)
    """
    new_signatures: Dict[str, str] = {}
    errors: List[IngestError] = []

    for filename, data in files:
        key = derive_signature_key(filename)
        if not key:
            print(f"   ⚠️ スキップ: ファイル名からキーを取得できません ({filename})")
            continue
        try:
            new_signatures[key] = image_to_data_url(data)
        except ValueError as e:
            print(f"   ❌ 署名画像の変換エラー {filename}: {e}")
            errors.append(IngestError(filename, str(e)))
            continue
        print(f"   ✅ {key} ← {filename}")

    # 既存プールに上書きマージ（一度に差し替える）
    merged = dict(pool)
    merged.update(new_signatures)
    return merged, errors


def load_signature_files(paths: Iterable[str]) -> Tuple[List[Tuple[str, bytes]], List[IngestError]]:
    files: List[Tuple[str, bytes]] = []
    errors: List[IngestError] = []
    for p in paths:
        path = Path(p)
        try:
            files.append((path.name, path.read_bytes()))
        except OSError as e:
            errors.append(IngestError(path.name, str(e)))
    return files, errors
