from pathlib import Path
from typing import Dict, Optional

from signature_pool import image_to_data_url
from voucher_models import VoucherAssets


# 既定画像（1x1 の透明PNG）。config/voucher.yml で実画像に差し替える
_BLANK_PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="

DEFAULT_LOGO_B64 = f"data:image/png;base64,{_BLANK_PNG_B64}"
CHECKED_BY_SIGNATURE_B64 = f"data:image/png;base64,{_BLANK_PNG_B64}"
APPROVED_SIGNATURE_B64 = f"data:image/png;base64,{_BLANK_PNG_B64}"
DEFAULT_RECEIVER_SIGNATURE_B64 = f"data:image/png;base64,{_BLANK_PNG_B64}"


def _from_path(path: Optional[str], fallback: str) -> str:
    if not path:
        return fallback
    return image_to_data_url(Path(path).read_bytes())


def load_default_assets(cfg: Dict) -> VoucherAssets:
    """設定ファイルの画像パスを読み込む。未指定なら組み込みの既定画像"""
    assets = cfg.get("assets", {}) or {}
    return VoucherAssets(
        logo=_from_path(assets.get("logo"), DEFAULT_LOGO_B64),
        checked_by_signature=_from_path(assets.get("checked_by_signature"), CHECKED_BY_SIGNATURE_B64),
        approved_by_signature=_from_path(assets.get("approved_by_signature"), APPROVED_SIGNATURE_B64),
        default_receiver_signature=_from_path(assets.get("default_receiver_signature"), DEFAULT_RECEIVER_SIGNATURE_B64),
    )
