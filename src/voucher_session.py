"""
伝票生成セッション
画面の状態（行データ・表示位置・選択ファイル・エラー）と署名プールを1か所で保持する
"""

import random
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from row_extractor import ClaudeVoucherExtractor, extract_rows
from signature_pool import image_to_data_url, ingest_signatures
from signature_resolver import resolve_receiver_signature
from voucher_models import IngestError, VoucherAssets, VoucherError, VoucherRow
from voucher_renderer import export_filename, render_vouchers_pdf


class VoucherSession:
    """1人のユーザーの作業セッション（永続化なし）"""

    def __init__(self, defaults: VoucherAssets, image_extractor: Optional[ClaudeVoucherExtractor] = None,
                 rng: Optional[random.Random] = None, header_similarity: float = 0.85,
                 filename_prefix: str = "vouchers_"):
        self.defaults = defaults
        self.image_extractor = image_extractor
        self.rng = rng or random.Random()
        self.header_similarity = header_similarity
        self.filename_prefix = filename_prefix

        self.rows: List[VoucherRow] = []
        self.current_index = 0
        self.data_file: Optional[Tuple[str, bytes]] = None
        self.content_type: Optional[str] = None
        self.error: Optional[str] = None
        self.is_loading = False

        self.signature_pool: Dict[str, str] = {}
        self.overrides: Dict[str, str] = {}
        # 行ごとに決定済みの受取人署名（プレビューとPDFで共通）
        self.assigned_signatures: Dict[VoucherRow, str] = {}

    # --- データファイル ---

    def select_data_file(self, name: str, data: bytes, content_type: Optional[str] = None):
        self.data_file = (name, data)
        self.content_type = content_type
        self.error = None

    @property
    def file_name(self) -> str:
        return self.data_file[0] if self.data_file else ""

    def generate(self) -> bool:
        """選択中のファイルから伝票を生成。失敗時は error に理由を入れて False"""
        if not self.data_file:
            return False
        self.is_loading = True
        self.error = None
        self.rows = []
        self.current_index = 0
        self.assigned_signatures = {}
        name, data = self.data_file
        try:
            self.rows = extract_rows(name, data, self.content_type, self.image_extractor, self.header_similarity)
        except VoucherError as e:
            print(f"❌ {e}")
            self.error = str(e)
            self.rows = []
        finally:
            self.is_loading = False
        return bool(self.rows) and self.error is None

    # --- ページ送り ---

    @property
    def current_row(self) -> Optional[VoucherRow]:
        if not self.rows:
            return None
        return self.rows[self.current_index]

    @property
    def position_label(self) -> str:
        return f"{self.current_index + 1} / {len(self.rows)}" if self.rows else "0 / 0"

    def next(self):
        if self.rows:
            self.current_index = min(len(self.rows) - 1, self.current_index + 1)

    def previous(self):
        self.current_index = max(0, self.current_index - 1)

    def reset(self):
        """最初の画面に戻る（署名プールと画像の差し替えは保持）"""
        self.rows = []
        self.current_index = 0
        self.data_file = None
        self.content_type = None
        self.error = None
        self.is_loading = False
        self.assigned_signatures = {}

    # --- 画像のカスタマイズ ---

    def _upload_override(self, slot: str, data: bytes) -> bool:
        try:
            self.overrides[slot] = image_to_data_url(data)
            self.assigned_signatures = {}
        except ValueError as e:
            print(f"Error converting image to data URL: {e}")
            self.error = "Failed to upload image. Please try another one."
            return False
        return True

    def upload_logo(self, data: bytes) -> bool:
        return self._upload_override("logo", data)

    def upload_checked_by_signature(self, data: bytes) -> bool:
        return self._upload_override("checked_by_signature", data)

    def upload_approved_by_signature(self, data: bytes) -> bool:
        return self._upload_override("approved_by_signature", data)

    def upload_default_receiver_signature(self, data: bytes) -> bool:
        return self._upload_override("default_receiver_signature", data)

    def upload_receiver_signatures(self, files: Sequence[Tuple[str, bytes]]) -> List[IngestError]:
        pool, errors = ingest_signatures(files, self.signature_pool)
        for err in errors:
            self.error = f"Failed to upload image {err.filename}. Please try again."
        self.signature_pool = pool
        self.assigned_signatures = {}
        return errors

    @property
    def assets(self) -> VoucherAssets:
        return replace(self.defaults, **self.overrides)

    # --- 署名と出力 ---

    def receiver_signature_for(self, row: VoucherRow) -> str:
        if row not in self.assigned_signatures:
            self.assigned_signatures[row] = resolve_receiver_signature(
                row.description, self.signature_pool, self.assets.default_receiver_signature, self.rng)
        return self.assigned_signatures[row]

    def export_pdf(self, output_dir: str = ".") -> Path:
        """全伝票を1つのPDFに出力してパスを返す"""
        target = Path(output_dir) / export_filename(self.file_name, self.filename_prefix)
        assets = self.assets
        try:
            render_vouchers_pdf(self.rows, assets, self.receiver_signature_for, target)
        except VoucherError as e:
            self.error = str(e)
            raise
        return target
