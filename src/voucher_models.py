import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


# AI抽出結果(camelCase)とスプレッドシート列名(snake_case)の両方を受け付ける
_FIELD_KEYS = {
    "date": ("date",),
    "bank_name": ("bank_name", "bankName"),
    "bank_code": ("bank_code", "bankCode"),
    "voucher_code": ("voucher_code", "voucherCode"),
    "paid_to": ("paid_to", "paidTo"),
    "reference_no": ("reference_no", "referenceNo"),
    "description": ("description", "being"),
}


def parse_amount(value) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        # NaN (pandasの空セル) は 0 扱い
        return 0.0 if value != value else float(value)
    s = str(value).strip()
    # 先頭の通貨表記（Rs. / INR / ₹）は小数点と誤認しないよう先に除去
    s = re.sub(r"^(rs\.?|inr|₹)\s*", "", s, flags=re.IGNORECASE)
    s = s.replace(",", "").replace(" ", "")
    # '12500/-' のような末尾記号は数値部分だけを取り出す
    m = re.search(r"-?\d+(?:\.\d+)?|-?\.\d+", s)
    return float(m.group(0)) if m else 0.0


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class VoucherRow:
    date: str = ""
    bank_name: str = ""
    bank_code: str = ""
    voucher_code: str = ""
    paid_to: str = ""
    reference_no: str = ""
    amount: float = 0.0
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict) -> "VoucherRow":
        values = {}
        for name, keys in _FIELD_KEYS.items():
            raw = next((data[k] for k in keys if k in data), None)
            values[name] = _text(raw)
        return cls(amount=parse_amount(data.get("amount")), **values)


@dataclass(frozen=True)
class SignatureRule:
    pattern: re.Pattern
    candidate_keys: Tuple[str, ...]

    @classmethod
    def words(cls, words: Tuple[str, ...], candidate_keys: Tuple[str, ...]) -> "SignatureRule":
        alternatives = "|".join(re.escape(w) for w in words)
        return cls(re.compile(rf"\b({alternatives})\b", re.IGNORECASE), tuple(candidate_keys))


@dataclass
class SignatureTrace:
    description: str
    matched_rule: Optional[str]
    selected_key: Optional[str]
    source: str  # rule|random|default


@dataclass
class IngestError:
    filename: str
    message: str


@dataclass
class VoucherAssets:
    logo: str
    checked_by_signature: str
    approved_by_signature: str
    default_receiver_signature: str


class VoucherError(Exception):
    pass


class UnsupportedFileTypeError(VoucherError):
    pass


class ExtractionError(VoucherError):
    pass


class ExportError(VoucherError):
    pass
