import os
import yaml


DEFAULTS = {
    "assets": {
        "logo": None,
        "checked_by_signature": None,
        "approved_by_signature": None,
        "default_receiver_signature": None,
    },
    "extraction": {
        "model": "claude-3-5-sonnet-20241022",
        "max_tokens": 4000,
        "timeout": 120,
        "header_similarity": 0.85,
    },
    "export": {"filename_prefix": "vouchers_", "output_dir": "."},
    "resolver": {"seed": None},
}


def _config_path() -> str:
    """環境変数 VOUCHER_CONFIG があれば優先（テストでの monkeypatch に追従するため毎回取得）。"""
    default = os.path.join(os.path.dirname(os.path.dirname(__file__)), "config", "voucher.yml")
    return os.getenv("VOUCHER_CONFIG", default)


def load_voucher_config() -> dict:
    path = _config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {k: dict(v) for k, v in DEFAULTS.items()}

    # shallow merge defaults
    merged = {k: dict(v) for k, v in DEFAULTS.items()}
    for k, v in (cfg or {}).items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v
    return merged


def get_api_key() -> str:
    return os.getenv("ANTHROPIC_API_KEY") or os.getenv("CLAUDE_API_KEY") or ""
