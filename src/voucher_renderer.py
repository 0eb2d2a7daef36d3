"""
支払伝票のPDF描画
1行 = 1ページ。全行を元の順序で1つのPDFにまとめて出力する
"""

import io
from pathlib import Path
from typing import BinaryIO, Callable, Sequence, Union

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A5, landscape
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, Table, TableStyle

from signature_pool import data_url_to_bytes
from voucher_models import ExportError, VoucherAssets, VoucherRow


PAGE_SIZE = landscape(A5)

_ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine", "Ten",
         "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen",
         "Eighteen", "Nineteen"]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]


def _below_hundred(n: int) -> str:
    if n < 20:
        return _ONES[n]
    return (_TENS[n // 10] + " " + _ONES[n % 10]).strip()


def _below_thousand(n: int) -> str:
    hundreds, rest = divmod(n, 100)
    parts = []
    if hundreds:
        parts.append(f"{_ONES[hundreds]} Hundred")
    if rest:
        parts.append(_below_hundred(rest))
    return " ".join(parts)


def _integer_in_words(n: int) -> str:
    if n == 0:
        return "Zero"
    # インド式の位取り（千・十万・千万）
    parts = []
    crore, n = divmod(n, 10000000)
    lakh, n = divmod(n, 100000)
    thousand, n = divmod(n, 1000)
    if crore:
        parts.append(f"{_integer_in_words(crore)} Crore")
    if lakh:
        parts.append(f"{_below_hundred(lakh)} Lakh")
    if thousand:
        parts.append(f"{_below_hundred(thousand)} Thousand")
    if n:
        parts.append(_below_thousand(n))
    return " ".join(parts)


def amount_in_words(amount: float) -> str:
    """1234.5 → 'Rupees One Thousand Two Hundred Thirty Four and Fifty Paise Only'"""
    paise_total = int(round(abs(amount or 0) * 100))
    rupees, paise = divmod(paise_total, 100)
    words = f"Rupees {_integer_in_words(rupees)}"
    if paise:
        words += f" and {_below_hundred(paise)} Paise"
    return words + " Only"


def format_amount(amount: float) -> str:
    """インド式の桁区切り（12,34,567.00）"""
    value = f"{abs(amount or 0):.2f}"
    whole, frac = value.split(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    return f"{whole}.{frac}"


def export_filename(data_filename: str, prefix: str = "vouchers_") -> str:
    stem = Path(data_filename or "").stem or "vouchers"
    return f"{prefix}{stem}.pdf"


def _draw_image(c: canvas.Canvas, data_url: str, x: float, y: float, w: float, h: float, label: str):
    try:
        reader = ImageReader(io.BytesIO(data_url_to_bytes(data_url)))
        c.drawImage(reader, x, y, width=w, height=h, preserveAspectRatio=True, anchor="c", mask="auto")
    except Exception as e:
        # 画像が壊れていても伝票自体は出力する
        print(f"   ⚠️ 画像を描画できません ({label}): {e}")


def draw_voucher(c: canvas.Canvas, row: VoucherRow, assets: VoucherAssets, receiver_signature: str):
    width, height = PAGE_SIZE
    margin = 10 * mm
    usable_width = width - 2 * margin

    c.setStrokeColor(colors.black)
    c.setLineWidth(1)
    c.rect(margin, margin, usable_width, height - 2 * margin)

    # ヘッダー
    top = height - margin
    _draw_image(c, assets.logo, margin + 3 * mm, top - 20 * mm, 35 * mm, 17 * mm, "logo")
    c.setFont("Helvetica-Bold", 16)
    c.drawCentredString(width / 2, top - 12 * mm, "PAYMENT VOUCHER")
    c.setFont("Helvetica", 9)
    c.drawRightString(width - margin - 4 * mm, top - 8 * mm, f"Date: {row.date}")
    c.drawRightString(width - margin - 4 * mm, top - 14 * mm, f"Voucher No: {row.voucher_code}")

    style_label = ParagraphStyle(name="label", fontName="Helvetica-Bold", fontSize=9, alignment=TA_LEFT, leading=11)
    style_value = ParagraphStyle(name="value", fontName="Helvetica", fontSize=9, alignment=TA_LEFT, leading=11)

    def cell(text, style=style_value):
        return Paragraph(str(text or "").replace("&", "&amp;").replace("<", "&lt;"), style)

    table_data = [
        [cell("Paid To", style_label), cell(row.paid_to), cell("Reference No", style_label), cell(row.reference_no)],
        [cell("Bank Name", style_label), cell(row.bank_name), cell("Bank Code", style_label), cell(row.bank_code)],
        [cell("Being", style_label), cell(row.description), "", ""],
        [cell("Amount", style_label), cell(f"Rs. {format_amount(row.amount)}"), "", ""],
        [cell("In Words", style_label), cell(amount_in_words(row.amount)), "", ""],
    ]
    table_width = usable_width - 8 * mm
    t = Table(table_data, colWidths=[table_width * 0.16, table_width * 0.38, table_width * 0.16, table_width * 0.30])
    t.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("SPAN", (1, 2), (3, 2)),
        ("SPAN", (1, 3), (3, 3)),
        ("SPAN", (1, 4), (3, 4)),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke),
        ("BACKGROUND", (2, 0), (2, 1), colors.whitesmoke),
    ]))
    _, table_height = t.wrapOn(c, table_width, height)
    t.drawOn(c, margin + 4 * mm, top - 26 * mm - table_height)

    # 署名欄（受取人・確認者・承認者）
    sig_w, sig_h = 40 * mm, 16 * mm
    base_y = margin + 10 * mm
    slots = [
        ("Receiver's Signature", receiver_signature),
        ("Checked By", assets.checked_by_signature),
        ("Approved By", assets.approved_by_signature),
    ]
    slot_width = usable_width / len(slots)
    c.setFont("Helvetica", 9)
    for i, (label, image) in enumerate(slots):
        center = margin + slot_width * i + slot_width / 2
        _draw_image(c, image, center - sig_w / 2, base_y + 2 * mm, sig_w, sig_h, label)
        c.line(center - sig_w / 2, base_y, center + sig_w / 2, base_y)
        c.drawCentredString(center, base_y - 5 * mm, label)


def render_vouchers_pdf(rows: Sequence[VoucherRow], assets: VoucherAssets,
                        signature_for: Callable[[VoucherRow], str],
                        target: Union[str, Path, BinaryIO]) -> int:
    """
    全伝票を1つのPDFに出力

    Args:
        rows: 伝票行（この順序でページを作る）
        assets: ロゴ・署名画像
        signature_for: 行 → 受取人署名の参照
        target: 出力先（パスまたはバイナリストリーム）

    Returns:
        出力したページ数
    """
    if not rows:
        raise ExportError("No vouchers to export.")
    try:
        c = canvas.Canvas(str(target) if isinstance(target, Path) else target, pagesize=PAGE_SIZE)
        c.setTitle("Payment Vouchers")
        for row in rows:
            draw_voucher(c, row, assets, signature_for(row))
            c.showPage()
        c.save()
    except OSError as e:
        raise ExportError(f"Failed to write PDF: {e}") from e
    return len(rows)
