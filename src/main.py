import argparse
import os
import random
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from config_loader import get_api_key, load_voucher_config
from row_extractor import ClaudeVoucherExtractor
from signature_pool import load_signature_files
from voucher_assets import load_default_assets
from voucher_models import VoucherError
from voucher_session import VoucherSession

load_dotenv()


def build_session(cfg: dict) -> VoucherSession:
    """設定からセッションを組み立てる"""
    extraction = cfg.get("extraction", {})
    api_key = get_api_key()
    extractor = None
    if api_key:
        extractor = ClaudeVoucherExtractor(
            api_key,
            model=extraction.get("model", "claude-3-5-sonnet-20241022"),
            max_tokens=int(extraction.get("max_tokens", 4000)),
            timeout=int(extraction.get("timeout", 120)),
        )

    seed = cfg.get("resolver", {}).get("seed")
    return VoucherSession(
        load_default_assets(cfg),
        image_extractor=extractor,
        rng=random.Random(seed) if seed is not None else None,
        header_similarity=float(extraction.get("header_similarity", 0.85)),
        filename_prefix=cfg.get("export", {}).get("filename_prefix", "vouchers_"),
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Excel/画像の支払データから支払伝票PDFを生成します")
    parser.add_argument("data_file", help="データファイル (.xlsx/.xls/.csv/.jpg/.png)")
    parser.add_argument("-s", "--signatures", nargs="*", default=[],
                        help="受取人署名画像（ファイル名=支店名。例: GRANULES.png）")
    parser.add_argument("--logo", help="ロゴ画像")
    parser.add_argument("--checked-by", help="'Checked By' 署名画像")
    parser.add_argument("--approved-by", help="'Approved By' 署名画像")
    parser.add_argument("--default-receiver", help="署名が見つからない場合の既定の受取人署名画像")
    parser.add_argument("-o", "--output-dir", help="PDFの出力先ディレクトリ")
    parser.add_argument("--preview", action="store_true", help="各伝票の内容と署名の割当てを表示")
    return parser.parse_args(argv)


def _apply_customizations(session: VoucherSession, args: argparse.Namespace) -> bool:
    uploads = [
        (args.logo, session.upload_logo, "ロゴ"),
        (args.checked_by, session.upload_checked_by_signature, "Checked By 署名"),
        (args.approved_by, session.upload_approved_by_signature, "Approved By 署名"),
        (args.default_receiver, session.upload_default_receiver_signature, "既定の受取人署名"),
    ]
    ok = True
    for path, upload, label in uploads:
        if not path:
            continue
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            print(f"❌ {label}を読み込めません: {e}")
            ok = False
            continue
        if upload(data):
            print(f"✅ {label}: {path}")
        else:
            print(f"❌ {label}: {session.error}")
            ok = False

    if args.signatures:
        print(f"\n🖊️  受取人署名を取り込み中... ({len(args.signatures)}件)")
        files, read_errors = load_signature_files(args.signatures)
        for err in read_errors:
            print(f"   ❌ {err.filename}: {err.message}")
        errors = session.upload_receiver_signatures(files)
        print(f"   登録済み署名: {', '.join(sorted(session.signature_pool)) or 'なし'}")
        ok = ok and not errors and not read_errors
    return ok


def _print_preview(session: VoucherSession):
    print("\n=== 伝票プレビュー ===")
    while True:
        row = session.current_row
        print(f"\n[{session.position_label}] {row.date} {row.voucher_code} {row.paid_to} ₹{row.amount:,.2f}")
        print(f"    Being: {row.description}")
        session.receiver_signature_for(row)
        if session.current_index == len(session.rows) - 1:
            break
        session.next()
    session.current_index = 0


def main(argv: Optional[List[str]] = None) -> int:
    """メイン処理"""
    args = parse_args(argv)

    print("=== 支払伝票の生成を開始します ===")
    print(f"実行時刻: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    cfg = load_voucher_config()
    try:
        session = build_session(cfg)
    except (OSError, ValueError) as e:
        print(f"エラー: 既定画像を読み込めません: {e}")
        return 1

    if not _apply_customizations(session, args):
        print("⚠️ 一部の画像を取り込めませんでした。残りの画像で続行します")

    data_path = Path(args.data_file)
    try:
        session.select_data_file(data_path.name, data_path.read_bytes())
    except OSError as e:
        print(f"エラー: データファイルを読み込めません: {e}")
        return 1

    print(f"\n📊 データファイル: {session.file_name}")
    if not session.generate():
        print(f"エラー: {session.error or '伝票データが見つかりません'}")
        return 1
    print(f"{len(session.rows)}件の伝票データを取得しました")

    if args.preview:
        _print_preview(session)

    output_dir = args.output_dir or cfg.get("export", {}).get("output_dir", ".")
    os.makedirs(output_dir, exist_ok=True)
    print("\n📄 PDFを作成中...")
    try:
        target = session.export_pdf(output_dir)
    except VoucherError as e:
        print(f"エラー: PDFの作成に失敗しました: {e}")
        return 1

    print("\n=== 処理完了 ===")
    print(f"  伝票: {len(session.rows)}件")
    print(f"  出力: {target}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
