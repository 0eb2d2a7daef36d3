"""
受取人署名の自動割当てルール
伝票の「Being」(摘要) から支店を判定し、アップロード済みの署名画像を選ぶ
"""

import random
from typing import Callable, Dict, List, Optional, Tuple

from voucher_models import SignatureRule, SignatureTrace


# 摘要の単語 → 探す署名ファイル名（拡張子なし・大文字）
# 上から順に評価し、最初にマッチしたルールだけを使う
SIGNATURE_RULES: Tuple[SignatureRule, ...] = (
    SignatureRule.words(("GRANULES", "GRANULE", "GRA"), ("GRANULES", "GRANULE")),
    SignatureRule.words(("CHEVELLA", "CHE"), ("CHEVELLA",)),
    SignatureRule.words(("BOLLARAM", "BOL"), ("BOLLARAM",)),
    SignatureRule.words(("BHEL", "BHE"), ("BHEL",)),
    SignatureRule.words(("ECIL", "ECI"), ("ECIL",)),
    SignatureRule.words(("MYP",), ("MYP",)),
    SignatureRule.words(("MKR",), ("MKR",)),
    SignatureRule.words(("GHM",), ("GHM",)),
)


Step = Callable[[str, Dict[str, str], random.Random], Optional[Tuple[str, SignatureTrace]]]


def _match_rule(description: str, rules: Tuple[SignatureRule, ...]) -> Optional[SignatureRule]:
    for rule in rules:
        if rule.pattern.search(description):
            return rule
    return None


def _rule_step(rules: Tuple[SignatureRule, ...]) -> Step:
    def step(description: str, pool: Dict[str, str], rng: random.Random):
        rule = _match_rule(description, rules)
        if rule is None:
            return None
        for key in rule.candidate_keys:
            if pool.get(key):
                return pool[key], SignatureTrace(description, rule.pattern.pattern, key, "rule")
        # マッチしたが該当ファイルなし → 後続ルールは見ずにランダムへ
        return None
    return step


def _random_step(description: str, pool: Dict[str, str], rng: random.Random):
    if not pool:
        return None
    key = rng.choice(sorted(pool))
    return pool[key], SignatureTrace(description, None, key, "random")


def _strategy_chain(rules: Tuple[SignatureRule, ...]) -> List[Tuple[str, Step]]:
    return [
        ("rule", _rule_step(rules)),
        ("random", _random_step),
    ]


def trace_receiver_signature(description: Optional[str], pool: Dict[str, str], default: str,
                             rng: Optional[random.Random] = None,
                             rules: Tuple[SignatureRule, ...] = SIGNATURE_RULES) -> Tuple[str, SignatureTrace]:
    """
    受取人署名を決定し、判定の記録とあわせて返す

    Args:
        description: 伝票の摘要（None は空文字扱い）
        pool: 署名プール（キー → data URI）。この関数は変更しない
        default: プールが空の場合に使う既定の署名
        rng: ランダム割当て用の乱数生成器（テストで固定する）
        rules: 判定ルール表

    Returns:
        (署名の参照, SignatureTrace)
    """
    desc = (description or "").strip()
    rng = rng or random.Random()

    matched = _match_rule(desc, rules)
    for _, step in _strategy_chain(rules):
        result = step(desc, pool, rng)
        if result is not None:
            reference, trace = result
            if trace.matched_rule is None and matched is not None:
                trace.matched_rule = matched.pattern.pattern
            return reference, trace

    return default, SignatureTrace(desc, matched.pattern.pattern if matched else None, None, "default")


def resolve_receiver_signature(description: Optional[str], pool: Dict[str, str], default: str,
                               rng: Optional[random.Random] = None) -> str:
    """受取人署名の参照を返す（例外は発生しない）"""
    reference, trace = trace_receiver_signature(description, pool, default, rng)
    if trace.source == "rule":
        print(f'🖊️  Voucher Description: "{trace.description}", Matched Rule: "{trace.matched_rule}", Selected Signature: "{trace.selected_key}"')
    elif trace.source == "random":
        print(f'🎲 Voucher Description: "{trace.description}", No rule resolved. Selected Random Signature: "{trace.selected_key}"')
    else:
        print(f'📄 Voucher Description: "{trace.description}", No rule matched and no signatures in pool. Using Default.')
    return reference
